from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional

from duka_sync.entity.actions import (ActionKind, ActionStatus, QueuedAction,
                                      QueueStats, SyncReport)
from duka_sync.entity.events import EventType
from duka_sync.exceptions import (ActionNotFoundError, ActionStateError,
                                  OfflineError, SyncDisabledError)
from duka_sync.infrastructure.network.monitor import NetworkMonitor
from duka_sync.infrastructure.persistence.store import QueueStore
from duka_sync.logger import logger
from duka_sync.messaging.events import EventBridge, EventHandler
from duka_sync.messaging.resolvers import ResolverRegistry
from duka_sync.usecase.queue.enqueuer import MutationEnqueuer
from duka_sync.usecase.queue.sync_engine import (Clock, RetryPolicy,
                                                 SyncEngine, utc_now)


class SyncQueue:
    """
    Публичная поверхность офлайн-очереди для UI, API и воркера.

    Все зависимости передаются явно, глобального состояния нет.
    """

    def __init__(
        self,
        store: QueueStore,
        monitor: NetworkMonitor,
        events: EventBridge,
        resolvers: ResolverRegistry,
        *,
        policy: Optional[RetryPolicy] = None,
        clock: Clock = utc_now,
        sync_interval: float = 30.0,
        online_settle_delay: float = 1.0,
        resolver_timeout: float = 30.0,
        sync_enabled: bool = True,
    ) -> None:
        self._store = store
        self._monitor = monitor
        self._events = events
        self._sync_interval = sync_interval
        self._online_settle_delay = online_settle_delay
        self.engine = SyncEngine(
            store,
            resolvers,
            events,
            monitor,
            policy=policy,
            clock=clock,
            resolver_timeout=resolver_timeout,
            enabled=sync_enabled,
        )
        self._enqueuer = MutationEnqueuer(store, events, monitor, self.engine, clock=clock)
        self._unsubscribe_network: Optional[Callable[[], None]] = None
        self._started = False

    @property
    def store(self) -> QueueStore:
        return self._store

    async def start(self) -> None:
        if self._started:
            return
        await self._store.load()
        self._unsubscribe_network = self._monitor.on_change(self._on_network_change)
        self.engine.start_timer(self._sync_interval)
        self._started = True
        if self._monitor.is_online():
            self.engine.request_drain()

    async def stop(self) -> None:
        if self._unsubscribe_network is not None:
            self._unsubscribe_network()
            self._unsubscribe_network = None
        await self.engine.stop()
        await self._store.close()
        self._started = False

    def enqueue(
        self,
        kind: ActionKind | str,
        resource: str,
        payload: Dict[str, Any],
        description: Optional[str] = None,
    ) -> str:
        return self._enqueuer.enqueue(kind, resource, payload, description=description)

    def count(self) -> int:
        return self._store.count()

    def list(self, status: Optional[ActionStatus] = None) -> List[QueuedAction]:
        return self._store.list(status)

    def get(self, action_id: str) -> QueuedAction:
        action = self._store.get(action_id)
        if action is None:
            raise ActionNotFoundError(action_id=action_id)
        return action

    def stats(self) -> QueueStats:
        return QueueStats(
            total=self._store.count(),
            pending=self._store.count(ActionStatus.PENDING),
            failed=self._store.count(ActionStatus.FAILED),
            degraded=self._store.degraded,
            online=self._monitor.is_online(),
        )

    def subscribe(self, event_type: EventType | str, handler: EventHandler) -> Callable[[], None]:
        return self._events.subscribe(event_type, handler)

    async def force_sync(self) -> SyncReport:
        """
        Ручной запуск синхронизации ("Синхронизировать сейчас").
        """
        if not self.engine.enabled:
            raise SyncDisabledError("Sync is disabled in this process")
        if not self._monitor.is_online():
            raise OfflineError("Cannot sync while offline")
        if self.engine.is_draining:
            return SyncReport(skipped=self._store.count(ActionStatus.PENDING))
        return await self.engine.drain()

    async def retry(self, action_id: str) -> QueuedAction:
        """
        Возвращает failed действие в очередь со сброшенным счётчиком попыток.
        """
        action = self.get(action_id)
        if action.status is not ActionStatus.FAILED:
            raise ActionStateError(action_id=action_id, status=action.status)

        updated = await self._store.update(
            action_id,
            status=ActionStatus.PENDING,
            attempts=0,
            last_error=None,
            last_attempt_at=None,
        )
        if updated is None:
            raise ActionNotFoundError(action_id=action_id)
        logger.info("Action %s requeued for retry", action_id)
        if self._monitor.is_online():
            self.engine.request_drain()
        return updated

    async def discard(self, action_id: str) -> QueuedAction:
        action = self.get(action_id)
        if action.status is ActionStatus.SYNCING:
            raise ActionStateError(action_id=action_id, status=action.status)
        await self._store.remove(action_id)
        logger.info("Action %s discarded", action_id)
        self._events.emit(
            EventType.DISCARDED,
            {"action_id": action_id, "resource": action.resource},
        )
        return action

    async def clear(self) -> int:
        """
        Удаляет все действия. Текущий проход остановится после действия в полёте.
        """
        self.engine.invalidate()
        removed = await self._store.clear()
        logger.info("Queue cleared: %s actions removed", removed)
        self._events.emit(EventType.CLEARED, {"removed": removed})
        return removed

    def set_online(self, online: bool) -> None:
        self._monitor.set_online(online)

    def is_online(self) -> bool:
        return self._monitor.is_online()

    def _on_network_change(self, online: bool) -> None:
        if online:
            self.engine.request_drain(self._online_settle_delay)
