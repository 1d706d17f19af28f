from __future__ import annotations

import asyncio
import os
import sys
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

import pytest
from dependency_injector import providers
from fastapi.testclient import TestClient

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from duka_sync.entity.actions import ActionKind, QueuedAction
from duka_sync.entity.events import EventType, QueueEvent
from duka_sync.infrastructure.network.monitor import NetworkMonitor
from duka_sync.infrastructure.persistence.backends import MemoryBackend
from duka_sync.infrastructure.persistence.store import QueueStore
from duka_sync.main import create_app
from duka_sync.messaging.events import EventBridge
from duka_sync.messaging.resolvers import ResolverRegistry
from duka_sync.settings import Settings
from duka_sync.usecase.queue import RetryPolicy, SyncQueue


class FakeClock:
    """
    Управляемые часы для проверки backoff.
    """

    def __init__(self) -> None:
        self.now = datetime(2026, 1, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class RecordingResolver:
    """
    Запоминает вызовы и по очереди выбрасывает заданные ошибки.
    """

    def __init__(self, name: str, calls: List[Tuple[str, Dict[str, Any]]]) -> None:
        self.name = name
        self.calls = calls
        self.errors: List[Optional[BaseException]] = []
        self.delay: float = 0.0

    async def __call__(self, payload: Dict[str, Any]) -> None:
        self.calls.append((self.name, payload))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.errors:
            error = self.errors.pop(0)
            if error is not None:
                raise error


class EventRecorder:

    def __init__(self, events: EventBridge) -> None:
        self.events: List[QueueEvent] = []
        events.subscribe_all(self.events.append)

    def of_type(self, event_type: EventType) -> List[QueueEvent]:
        return [event for event in self.events if event.type is event_type]


class Harness:

    def __init__(
        self,
        *,
        online: bool = True,
        backend: Optional[MemoryBackend] = None,
        policy: Optional[RetryPolicy] = None,
        sync_enabled: bool = True,
    ) -> None:
        self.clock = FakeClock()
        self.backend = backend or MemoryBackend()
        self.events = EventBridge()
        self.recorder = EventRecorder(self.events)
        self.monitor = NetworkMonitor(initial=online)
        self.store = QueueStore(self.backend, self.events)
        self.registry = ResolverRegistry()
        self.calls: List[Tuple[str, Dict[str, Any]]] = []
        self.policy = policy or RetryPolicy(
            base_delay=10.0, factor=2.0, max_delay=600.0, max_attempts=10
        )
        self.queue = SyncQueue(
            self.store,
            self.monitor,
            self.events,
            self.registry,
            policy=self.policy,
            clock=self.clock,
            sync_interval=0,
            online_settle_delay=0,
            resolver_timeout=5.0,
            sync_enabled=sync_enabled,
        )

    def resolver(self, resource: str, kind: ActionKind | str = ActionKind.CREATE) -> RecordingResolver:
        resolver = RecordingResolver(f"{resource}.{ActionKind(kind).value}", self.calls)
        self.registry.register(resource, kind, resolver)
        return resolver

    def payloads(self) -> List[Dict[str, Any]]:
        return [payload for _, payload in self.calls]

    async def settle(self) -> None:
        await self.queue.engine.wait_idle()
        await self.store.flush()


def make_action(action_id: str, *, resource: str = "order", sequence: int = 1, **kwargs: Any) -> QueuedAction:
    return QueuedAction(
        id=action_id,
        kind=kwargs.pop("kind", ActionKind.CREATE),
        resource=resource,
        payload=kwargs.pop("payload", {"ref": action_id}),
        created_at=kwargs.pop("created_at", datetime(2026, 1, 1, tzinfo=timezone.utc)),
        sequence=sequence,
        **kwargs,
    )


@pytest.fixture()
def harness() -> Harness:
    return Harness()


@pytest.fixture()
def offline_harness() -> Harness:
    return Harness(online=False)


@pytest.fixture()
def api_registry() -> ResolverRegistry:
    return ResolverRegistry()


@pytest.fixture()
def api_client(api_registry: ResolverRegistry) -> TestClient:
    """
    Приложение с очередью в памяти и подменёнными resolver'ами, без проверки соединения.
    """
    app = create_app(
        Settings(
            STORAGE_BACKEND="memory",
            PROBE_ENABLED=False,
            SYNC_INTERVAL=0,
            ONLINE_SETTLE_DELAY=60,
        )
    )
    app.container.messaging.resolvers.override(providers.Object(api_registry))

    with TestClient(app) as client:
        yield client

    app.container.messaging.resolvers.reset_override()
