from __future__ import annotations

import uuid
from typing import Any, Dict, Optional

from duka_sync.entity.actions import ActionKind, QueuedAction
from duka_sync.entity.events import EventType
from duka_sync.exceptions import InvalidActionError
from duka_sync.infrastructure.network.monitor import NetworkMonitor
from duka_sync.infrastructure.persistence.store import QueueStore
from duka_sync.logger import logger
from duka_sync.messaging.events import EventBridge
from duka_sync.usecase.queue.sync_engine import Clock, SyncEngine, utc_now


class MutationEnqueuer:
    """
    Единственный способ отложить запись из кода приложения.
    """

    def __init__(
        self,
        store: QueueStore,
        events: EventBridge,
        monitor: NetworkMonitor,
        engine: SyncEngine,
        *,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._events = events
        self._monitor = monitor
        self._engine = engine
        self._clock = clock

    def enqueue(
        self,
        kind: ActionKind | str,
        resource: str,
        payload: Dict[str, Any],
        *,
        description: Optional[str] = None,
    ) -> str:
        """
        Принимает действие синхронно. Ошибки хранилища приходят событием
        storage-degraded, а не исключением.
        """
        action = QueuedAction(
            id=uuid.uuid4().hex,
            kind=self._parse_kind(kind),
            resource=self._validate_resource(resource),
            payload=self._validate_payload(payload),
            created_at=self._clock(),
            sequence=self._store.next_sequence(),
            description=description,
        )
        self._store.append_nowait(action)
        logger.info(
            "Queued %s %s as %s",
            action.kind.value,
            action.resource,
            action.id,
            extra={"action_id": action.id, "resource": action.resource},
        )
        self._events.emit(
            EventType.QUEUED,
            {
                "action_id": action.id,
                "resource": action.resource,
                "kind": action.kind.value,
                "description": description,
                "count": self._store.count(),
            },
        )

        if self._monitor.is_online():
            self._engine.request_drain()
        return action.id

    @staticmethod
    def _parse_kind(kind: ActionKind | str) -> ActionKind:
        try:
            return ActionKind(kind)
        except ValueError:
            raise InvalidActionError(
                f"Unsupported action kind: {kind}",
                context={"kind": str(kind)},
            ) from None

    @staticmethod
    def _validate_resource(resource: str) -> str:
        if not isinstance(resource, str) or not resource.strip():
            raise InvalidActionError("Resource name must be a non-empty string")
        return resource.strip()

    @staticmethod
    def _validate_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
        if not isinstance(payload, dict):
            raise InvalidActionError(
                "Payload must be a dictionary",
                context={"payload_type": type(payload).__name__},
            )
        return dict(payload)
