from __future__ import annotations

import asyncio
import dataclasses
from typing import Any, Dict, List, Optional

from duka_sync.entity.actions import ActionStatus, QueuedAction
from duka_sync.entity.events import EventType
from duka_sync.infrastructure.persistence.backends import StorageBackend
from duka_sync.logger import logger
from duka_sync.messaging.events import EventBridge

_MUTABLE_FIELDS = frozenset(
    {"status", "attempts", "last_error", "last_attempt_at", "payload", "description"}
)


class QueueStore:
    """
    Упорядоченная очередь действий в памяти с записью в StorageBackend.

    Индекс в памяти является источником правды для текущей сессии. Ошибки
    хранилища не пробрасываются: store переходит в degraded-режим и сообщает
    об этом через EventBridge.
    """

    def __init__(self, backend: StorageBackend, events: Optional[EventBridge] = None) -> None:
        self._backend = backend
        self._events = events
        self._actions: Dict[str, QueuedAction] = {}
        self._write_lock = asyncio.Lock()
        self._pending_writes: set[asyncio.Task[None]] = set()
        self._degraded = False
        # Deletes and clears that never reached the backend while degraded.
        self._unsynced_deletes: set[str] = set()
        self._clear_pending = False
        self._next_sequence = 0

    @property
    def degraded(self) -> bool:
        return self._degraded

    def next_sequence(self) -> int:
        self._next_sequence += 1
        return self._next_sequence

    async def load(self) -> List[QueuedAction]:
        """
        Загружает записи из хранилища и возвращает зависшие в syncing в pending.
        """
        try:
            stored = await self._backend.get_all()
        except Exception as exc:
            logger.exception("Failed to load queued actions from storage")
            self._set_degraded(exc)
            return self.list()

        stored.sort(key=lambda action: action.order_key)
        reconciled: List[str] = []
        for action in stored:
            if action.status is ActionStatus.SYNCING:
                action.status = ActionStatus.PENDING
                reconciled.append(action.id)
            self._actions[action.id] = action
            self._next_sequence = max(self._next_sequence, action.sequence)

        if reconciled:
            logger.warning(
                "Reset %s interrupted actions back to pending",
                len(reconciled),
                extra={"action_ids": reconciled},
            )
            for action_id in reconciled:
                await self._write(action_id)

        logger.info("Loaded %s queued actions", len(self._actions))
        return self.list()

    async def append(self, action: QueuedAction) -> None:
        self._insert(action)
        await self._write(action.id)

    def append_nowait(self, action: QueuedAction) -> asyncio.Task[None]:
        """
        Добавляет действие в память синхронно, запись в хранилище идёт в фоне.
        """
        self._insert(action)
        task = asyncio.ensure_future(self._write(action.id))
        self._pending_writes.add(task)
        task.add_done_callback(self._pending_writes.discard)
        return task

    def list(self, status: Optional[ActionStatus] = None) -> List[QueuedAction]:
        actions = sorted(self._actions.values(), key=lambda action: action.order_key)
        return [
            dataclasses.replace(action)
            for action in actions
            if status is None or action.status is status
        ]

    def get(self, action_id: str) -> Optional[QueuedAction]:
        action = self._actions.get(action_id)
        return dataclasses.replace(action) if action else None

    def count(self, status: Optional[ActionStatus] = None) -> int:
        if status is None:
            return len(self._actions)
        return sum(1 for action in self._actions.values() if action.status is status)

    async def remove(self, action_id: str) -> None:
        if self._actions.pop(action_id, None) is None:
            logger.debug("Remove of missing action %s ignored", action_id)
            return
        await self._write(action_id)

    async def update(self, action_id: str, **patch: Any) -> Optional[QueuedAction]:
        action = self._actions.get(action_id)
        if action is None:
            logger.warning("Update of missing action %s ignored", action_id)
            return None

        unknown = set(patch) - _MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be updated: {sorted(unknown)}")

        updated = dataclasses.replace(action, **patch)
        self._actions[action_id] = updated
        await self._write(action_id)
        return dataclasses.replace(updated)

    async def clear(self) -> int:
        removed = len(self._actions)
        self._actions.clear()
        async with self._write_lock:
            try:
                await self._backend.clear()
            except Exception as exc:
                logger.exception("Failed to clear queued actions in storage")
                self._clear_pending = True
                self._set_degraded(exc)
            else:
                self._clear_pending = False
                self._unsynced_deletes.clear()
                self._set_recovered()
        return removed

    async def flush(self) -> None:
        if self._pending_writes:
            await asyncio.gather(*list(self._pending_writes), return_exceptions=True)

    async def close(self) -> None:
        await self.flush()
        try:
            await self._backend.close()
        except Exception:
            logger.exception("Failed to close queue storage")

    def _insert(self, action: QueuedAction) -> None:
        if action.id in self._actions:
            raise ValueError(f"Action id already queued: {action.id}")
        self._actions[action.id] = dataclasses.replace(action)

    async def _write(self, action_id: str) -> None:
        # Persist the current in-memory state of the id, not a captured copy,
        # so that late writes never resurrect removed records.
        async with self._write_lock:
            action = self._actions.get(action_id)
            try:
                if action is None:
                    await self._backend.delete(action_id)
                else:
                    await self._backend.put(action)
            except Exception as exc:
                if action is None:
                    self._unsynced_deletes.add(action_id)
                logger.error(
                    "Failed to persist queued action %s: %s",
                    action_id,
                    exc,
                    extra={"action_id": action_id, "error_type": type(exc).__name__},
                )
                self._set_degraded(exc)
            else:
                self._unsynced_deletes.discard(action_id)
                if self._degraded and not await self._resync_locked():
                    return
                self._set_recovered()

    async def _resync_locked(self) -> bool:
        # Replay what never reached the backend: clear, deletes, then records.
        try:
            if self._clear_pending:
                await self._backend.clear()
                self._clear_pending = False
                self._unsynced_deletes.clear()
            for action_id in sorted(self._unsynced_deletes - set(self._actions)):
                await self._backend.delete(action_id)
                self._unsynced_deletes.discard(action_id)
        except Exception as exc:
            logger.error("Resync of removed actions failed: %s", exc)
            return False

        for action in list(self._actions.values()):
            try:
                await self._backend.put(action)
            except Exception as exc:
                logger.error("Resync of action %s failed: %s", action.id, exc)
                return False
        return True

    def _set_degraded(self, exc: BaseException) -> None:
        if self._degraded:
            return
        self._degraded = True
        logger.warning("Queue storage degraded, running in memory only")
        if self._events is not None:
            self._events.emit(
                EventType.STORAGE_DEGRADED,
                {"error": str(exc), "error_type": type(exc).__name__},
            )

    def _set_recovered(self) -> None:
        if not self._degraded:
            return
        self._degraded = False
        logger.info("Queue storage recovered")
        if self._events is not None:
            self._events.emit(EventType.STORAGE_RECOVERED, {"count": len(self._actions)})
