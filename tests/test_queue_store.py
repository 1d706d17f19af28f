from __future__ import annotations

from typing import List

import pytest

from duka_sync.entity.actions import ActionStatus, QueuedAction
from duka_sync.entity.events import EventType
from duka_sync.infrastructure.persistence.backends import (MemoryBackend,
                                                           SqlAlchemyBackend)
from duka_sync.infrastructure.persistence.db import Database
from duka_sync.infrastructure.persistence.store import QueueStore
from duka_sync.messaging.events import EventBridge

from tests.conftest import EventRecorder, make_action


class FlakyBackend(MemoryBackend):
    """
    Хранилище, которое падает пока broken=True (например, квота исчерпана).
    """

    def __init__(self) -> None:
        super().__init__()
        self.broken = False

    async def get_all(self) -> List[QueuedAction]:
        if self.broken:
            raise OSError("storage unavailable")
        return await super().get_all()

    async def put(self, action: QueuedAction) -> None:
        if self.broken:
            raise OSError("quota exceeded")
        await super().put(action)

    async def delete(self, action_id: str) -> None:
        if self.broken:
            raise OSError("storage unavailable")
        await super().delete(action_id)

    async def clear(self) -> None:
        if self.broken:
            raise OSError("storage unavailable")
        await super().clear()


@pytest.mark.asyncio()
async def test_list_returns_fifo_snapshot() -> None:
    store = QueueStore(MemoryBackend())
    await store.append(make_action("b", sequence=2))
    await store.append(make_action("a", sequence=1))

    snapshot = store.list()
    assert [action.id for action in snapshot] == ["a", "b"]

    snapshot[0].status = ActionStatus.FAILED
    assert store.get("a").status is ActionStatus.PENDING
    assert store.count() == 2


@pytest.mark.asyncio()
async def test_remove_and_update_of_missing_id_are_noops() -> None:
    store = QueueStore(MemoryBackend())

    await store.remove("missing")
    assert await store.update("missing", attempts=3) is None
    assert store.count() == 0


@pytest.mark.asyncio()
async def test_update_merges_fields_and_persists() -> None:
    backend = MemoryBackend()
    store = QueueStore(backend)
    await store.append(make_action("a"))

    updated = await store.update("a", attempts=2, last_error="timeout")

    assert updated.attempts == 2
    assert backend.records["a"]["last_error"] == "timeout"
    assert store.count(ActionStatus.PENDING) == 1


@pytest.mark.asyncio()
async def test_reload_resets_syncing_to_pending() -> None:
    backend = MemoryBackend()
    first = QueueStore(backend)
    await first.append(make_action("a", sequence=1))
    await first.append(make_action("b", sequence=2))
    await first.append(make_action("c", sequence=3))
    await first.update("b", status=ActionStatus.SYNCING)
    await first.remove("c")

    reloaded = QueueStore(backend)
    actions = await reloaded.load()

    assert [action.id for action in actions] == ["a", "b"]
    assert {action.status for action in actions} == {ActionStatus.PENDING}
    assert backend.records["b"]["status"] == ActionStatus.PENDING.value


@pytest.mark.asyncio()
async def test_sqlite_backend_survives_reload(tmp_path) -> None:
    url = f"sqlite+aiosqlite:///{tmp_path / 'queue.db'}"
    first = QueueStore(SqlAlchemyBackend(Database(url)))
    await first.append(make_action("a", sequence=1, payload={"total": 500}))
    await first.append(make_action("b", sequence=2))
    await first.update("a", status=ActionStatus.SYNCING, attempts=1)
    await first.close()

    reloaded = QueueStore(SqlAlchemyBackend(Database(url)))
    actions = await reloaded.load()
    await reloaded.close()

    assert [action.id for action in actions] == ["a", "b"]
    assert actions[0].status is ActionStatus.PENDING
    assert actions[0].attempts == 1
    assert actions[0].payload == {"total": 500}
    assert actions[0].created_at.tzinfo is not None


@pytest.mark.asyncio()
async def test_storage_failure_degrades_without_raising() -> None:
    backend = FlakyBackend()
    events = EventBridge()
    recorder = EventRecorder(events)
    store = QueueStore(backend, events)
    backend.broken = True

    store.append_nowait(make_action("a", sequence=1))
    await store.flush()
    await store.append(make_action("b", sequence=2))

    assert store.degraded
    assert store.count() == 2
    assert len(recorder.of_type(EventType.STORAGE_DEGRADED)) == 1
    assert backend.records == {}

    backend.broken = False
    await store.update("b", attempts=1)

    assert not store.degraded
    assert set(backend.records) == {"a", "b"}
    assert len(recorder.of_type(EventType.STORAGE_RECOVERED)) == 1


@pytest.mark.asyncio()
async def test_load_failure_starts_empty_in_degraded_mode() -> None:
    backend = FlakyBackend()
    backend.broken = True
    store = QueueStore(backend)

    assert await store.load() == []
    assert store.degraded


@pytest.mark.asyncio()
async def test_late_write_does_not_resurrect_removed_action() -> None:
    backend = MemoryBackend()
    store = QueueStore(backend)

    store.append_nowait(make_action("a"))
    await store.remove("a")
    await store.flush()

    assert backend.records == {}


@pytest.mark.asyncio()
async def test_remove_while_degraded_is_replayed_on_recovery() -> None:
    backend = FlakyBackend()
    store = QueueStore(backend)
    await store.append(make_action("a", sequence=1))

    backend.broken = True
    await store.remove("a")
    assert store.degraded
    assert set(backend.records) == {"a"}

    backend.broken = False
    await store.append(make_action("b", sequence=2))
    assert not store.degraded

    reloaded = QueueStore(backend)
    actions = await reloaded.load()

    assert [action.id for action in actions] == ["b"]


@pytest.mark.asyncio()
async def test_clear_while_degraded_is_replayed_on_recovery() -> None:
    backend = FlakyBackend()
    store = QueueStore(backend)
    await store.append(make_action("a", sequence=1))
    await store.append(make_action("b", sequence=2))

    backend.broken = True
    assert await store.clear() == 2
    assert store.degraded

    backend.broken = False
    await store.append(make_action("c", sequence=3))

    assert not store.degraded
    assert set(backend.records) == {"c"}
