from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Optional, Set

from duka_sync.entity.actions import (ActionStatus, QueuedAction,
                                      SyncReport)
from duka_sync.entity.events import EventType
from duka_sync.exceptions import (DuplicateActionError, PermanentSyncError,
                                  ResolverNotFoundError)
from duka_sync.infrastructure.network.monitor import NetworkMonitor
from duka_sync.infrastructure.persistence.store import QueueStore
from duka_sync.logger import logger
from duka_sync.messaging.events import EventBridge
from duka_sync.messaging.resolvers import ResolverRegistry

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Outcome(str, Enum):
    SUCCESS = "success"
    TRANSIENT = "transient"
    PERMANENT = "permanent"


def classify_error(exc: BaseException) -> Outcome:
    """
    Временная ошибка - повтор с backoff, постоянная - действие в failed.
    Неизвестные ошибки считаются временными, их ограничивает max_attempts.
    """
    if isinstance(exc, DuplicateActionError):
        return Outcome.SUCCESS
    if isinstance(exc, (PermanentSyncError, ResolverNotFoundError)):
        return Outcome.PERMANENT
    return Outcome.TRANSIENT


@dataclass(slots=True, frozen=True)
class RetryPolicy:
    base_delay: float = 2.0
    factor: float = 2.0
    max_delay: float = 300.0
    max_attempts: int = 10

    def delay(self, attempts: int) -> float:
        if attempts <= 0:
            return 0.0
        return min(self.base_delay * self.factor ** (attempts - 1), self.max_delay)

    def next_attempt_at(self, action: QueuedAction) -> Optional[datetime]:
        if action.attempts <= 0 or action.last_attempt_at is None:
            return None
        return action.last_attempt_at + timedelta(seconds=self.delay(action.attempts))

    def is_due(self, action: QueuedAction, now: datetime) -> bool:
        next_at = self.next_attempt_at(action)
        return next_at is None or now >= next_at

    def exhausted(self, attempts: int) -> bool:
        return self.max_attempts > 0 and attempts >= self.max_attempts


class SyncEngine:
    """
    Разбирает очередь против удалённого бэкенда строго в FIFO порядке.

    Одновременно выполняется не более одного прохода (drain). Действия,
    добавленные во время прохода, обрабатываются следующим проходом.
    """

    def __init__(
        self,
        store: QueueStore,
        resolvers: ResolverRegistry,
        events: EventBridge,
        monitor: NetworkMonitor,
        *,
        policy: Optional[RetryPolicy] = None,
        clock: Clock = utc_now,
        resolver_timeout: float = 30.0,
        enabled: bool = True,
    ) -> None:
        self._store = store
        self._resolvers = resolvers
        self._events = events
        self._monitor = monitor
        self._policy = policy or RetryPolicy()
        self._clock = clock
        self._resolver_timeout = resolver_timeout
        self._enabled = enabled
        self._draining = False
        self._generation = 0
        self._scheduled: Optional[asyncio.Task[SyncReport]] = None
        self._timer: Optional[asyncio.Task[None]] = None

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def is_draining(self) -> bool:
        return self._draining

    def invalidate(self) -> None:
        """
        Текущий проход остановится после действия, которое уже выполняется.
        """
        self._generation += 1

    def request_drain(self, delay: float = 0.0) -> None:
        """
        Планирует проход в фоне. Повторные запросы до его старта игнорируются.
        """
        if not self._enabled:
            return
        if self._scheduled is not None and not self._scheduled.done():
            return
        self._scheduled = asyncio.ensure_future(self._drain_later(delay))

    async def wait_idle(self) -> None:
        while True:
            # Let call_soon callbacks schedule follow-up passes.
            await asyncio.sleep(0)
            task = self._scheduled
            if task is not None and not task.done():
                await asyncio.wait({task})
                continue
            if not self._draining:
                return

    def start_timer(self, interval: float) -> None:
        if interval <= 0 or not self._enabled:
            return
        if self._timer is None or self._timer.done():
            self._timer = asyncio.create_task(self._run_timer(interval))

    async def stop(self) -> None:
        self.invalidate()
        for task in (self._timer, self._scheduled):
            if task is None or task.done():
                continue
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._timer = None
        self._scheduled = None

    async def drain(self) -> SyncReport:
        report = SyncReport()
        if not self._enabled:
            logger.debug("Drain skipped: sync disabled in this process")
            return report
        if self._draining:
            logger.debug("Drain already in progress, trigger ignored")
            return report
        if not self._monitor.is_online():
            logger.debug("Drain skipped: offline")
            return report

        self._draining = True
        try:
            await self._drain_pass(report)
        finally:
            self._draining = False
        return report

    async def _drain_pass(self, report: SyncReport) -> None:
        snapshot = self._store.list(ActionStatus.PENDING)
        if not snapshot:
            self._emit_if_empty()
            return

        generation = self._generation
        snapshot_ids = {action.id for action in snapshot}
        blocked: Set[str] = set()
        self._events.emit(EventType.SYNC_START, {"pending": len(snapshot)})
        logger.info("Sync pass started: %s pending actions", len(snapshot))

        for action in snapshot:
            if generation != self._generation or not self._monitor.is_online():
                logger.info("Sync pass interrupted")
                break

            current = self._store.get(action.id)
            if current is None or current.status is not ActionStatus.PENDING:
                continue

            if current.resource in blocked:
                report.skipped += 1
                continue

            if not self._policy.is_due(current, self._clock()):
                # Later actions of the same resource must wait for this one.
                blocked.add(current.resource)
                report.skipped += 1
                continue

            if not await self._replay(current, report):
                blocked.add(current.resource)

        logger.info(
            "Sync pass finished: synced=%s retried=%s failed=%s skipped=%s",
            report.synced,
            report.retried,
            report.failed,
            report.skipped,
        )

        fresh = [
            action
            for action in self._store.list(ActionStatus.PENDING)
            if action.id not in snapshot_ids
        ]
        if fresh and generation == self._generation:
            asyncio.get_running_loop().call_soon(self.request_drain)
        else:
            self._emit_if_empty()

    async def _replay(self, action: QueuedAction, report: SyncReport) -> bool:
        """
        Воспроизводит одно действие. False - временная ошибка, ресурс блокируется.
        """
        await self._store.update(action.id, status=ActionStatus.SYNCING)
        try:
            resolver = self._resolvers.get(action.resource, action.kind)
            await asyncio.wait_for(
                resolver(dict(action.payload)),
                timeout=self._resolver_timeout,
            )
        except asyncio.CancelledError:
            await self._store.update(action.id, status=ActionStatus.PENDING)
            raise
        except Exception as exc:
            outcome = classify_error(exc)
            if outcome is Outcome.SUCCESS:
                logger.info("Action %s already applied remotely", action.id)
                await self._on_success(action, report)
                return True
            if outcome is Outcome.PERMANENT:
                await self._on_permanent(action, exc, report)
                return True
            return await self._on_transient(action, exc, report)

        await self._on_success(action, report)
        return True

    async def _on_success(self, action: QueuedAction, report: SyncReport) -> None:
        await self._store.remove(action.id)
        report.synced += 1
        self._events.emit(
            EventType.SYNCED,
            {"action_id": action.id, "resource": action.resource, "kind": action.kind.value},
        )

    async def _on_transient(
        self,
        action: QueuedAction,
        exc: Exception,
        report: SyncReport,
    ) -> bool:
        attempts = action.attempts + 1
        error = _describe(exc)
        if self._policy.exhausted(attempts):
            logger.error(
                "Action %s gave up after %s attempts: %s",
                action.id,
                attempts,
                error,
            )
            await self._mark_failed(action, attempts, error, report)
            return True

        updated = await self._store.update(
            action.id,
            status=ActionStatus.PENDING,
            attempts=attempts,
            last_error=error,
            last_attempt_at=self._clock(),
        )
        if updated is None:
            logger.info("Action %s was removed while syncing", action.id)
            return True
        report.retried += 1
        next_at = self._policy.next_attempt_at(updated)
        logger.warning(
            "Transient failure for action %s (attempt %s): %s",
            action.id,
            attempts,
            error,
            extra={"action_id": action.id, "resource": action.resource},
        )
        self._events.emit(
            EventType.SYNC_ERROR,
            {
                "action_id": action.id,
                "resource": action.resource,
                "attempts": attempts,
                "error": error,
                "next_attempt_at": next_at.isoformat() if next_at else None,
            },
        )
        return False

    async def _on_permanent(
        self,
        action: QueuedAction,
        exc: Exception,
        report: SyncReport,
    ) -> None:
        error = _describe(exc)
        if isinstance(exc, ResolverNotFoundError):
            logger.error(
                "No resolver for %s/%s, action %s marked failed",
                action.resource,
                action.kind.value,
                action.id,
                extra=exc.context,
            )
        else:
            logger.warning("Permanent failure for action %s: %s", action.id, error)
        await self._mark_failed(action, action.attempts + 1, error, report)

    async def _mark_failed(
        self,
        action: QueuedAction,
        attempts: int,
        error: str,
        report: SyncReport,
    ) -> None:
        updated = await self._store.update(
            action.id,
            status=ActionStatus.FAILED,
            attempts=attempts,
            last_error=error,
            last_attempt_at=self._clock(),
        )
        if updated is None:
            logger.info("Action %s was removed while syncing", action.id)
            return
        report.failed += 1
        report.errors.append(f"{action.resource}/{action.kind.value}: {error}")
        self._events.emit(
            EventType.SYNC_FAILED,
            {
                "action_id": action.id,
                "resource": action.resource,
                "attempts": attempts,
                "error": error,
            },
        )

    def _emit_if_empty(self) -> None:
        if self._store.count() == 0:
            self._events.emit(EventType.QUEUE_EMPTY, {})

    async def _drain_later(self, delay: float) -> SyncReport:
        if delay > 0:
            await asyncio.sleep(delay)
        return await self.drain()

    async def _run_timer(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            if self._monitor.is_online() and self._store.count(ActionStatus.PENDING):
                self.request_drain()


def _describe(exc: BaseException) -> str:
    if isinstance(exc, asyncio.TimeoutError):
        return "Resolver timed out"
    return str(exc) or type(exc).__name__
