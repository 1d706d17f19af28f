from __future__ import annotations

import asyncio

import pytest

from duka_sync.entity.events import EventType
from duka_sync.infrastructure.network.monitor import (ConnectivityProbe,
                                                      NetworkMonitor)
from duka_sync.messaging.events import EventBridge


def test_monitor_notifies_only_on_transitions() -> None:
    monitor = NetworkMonitor(initial=True)
    changes = []
    unsubscribe = monitor.on_change(changes.append)

    monitor.set_online(True)
    monitor.set_online(False)
    monitor.set_online(False)
    monitor.set_online(True)
    unsubscribe()
    monitor.set_online(False)

    assert changes == [False, True]
    assert monitor.is_online() is False


def test_failing_listener_does_not_block_others() -> None:
    monitor = NetworkMonitor(initial=False)
    seen = []

    def broken(_online: bool) -> None:
        raise RuntimeError("listener bug")

    monitor.on_change(broken)
    monitor.on_change(seen.append)
    monitor.set_online(True)

    assert seen == [True]


@pytest.mark.asyncio()
async def test_probe_follows_backend_reachability() -> None:
    server = await asyncio.start_server(lambda reader, writer: writer.close(), "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    monitor = NetworkMonitor(initial=False)
    probe = ConnectivityProbe(monitor, "127.0.0.1", port, interval=60, timeout=1)

    assert await probe.check() is True
    assert monitor.is_online()

    server.close()
    await server.wait_closed()

    assert await probe.check() is False
    assert not monitor.is_online()


def test_bridge_delivers_only_to_current_subscribers() -> None:
    bridge = EventBridge()
    early, late, everything = [], [], []
    bridge.subscribe(EventType.SYNCED, early.append)
    bridge.subscribe_all(everything.append)

    bridge.emit(EventType.SYNCED, {"action_id": "a"})
    bridge.subscribe("synced", late.append)
    bridge.emit("synced", {"action_id": "b"})
    bridge.emit(EventType.QUEUE_EMPTY)

    assert [event.detail["action_id"] for event in early] == ["a", "b"]
    assert [event.detail["action_id"] for event in late] == ["b"]
    assert [event.type for event in everything] == [
        EventType.SYNCED,
        EventType.SYNCED,
        EventType.QUEUE_EMPTY,
    ]


def test_bridge_isolates_handler_errors() -> None:
    bridge = EventBridge()
    received = []

    def broken(_event) -> None:
        raise ValueError("toast rendering failed")

    bridge.subscribe(EventType.QUEUED, broken)
    bridge.subscribe(EventType.QUEUED, received.append)

    bridge.emit(EventType.QUEUED, {"action_id": "a"})

    assert len(received) == 1


@pytest.mark.asyncio()
async def test_bridge_runs_async_handlers() -> None:
    bridge = EventBridge()
    received = []

    async def handler(event) -> None:
        await asyncio.sleep(0)
        received.append(event.type)

    bridge.subscribe(EventType.SYNC_START, handler)
    bridge.emit(EventType.SYNC_START, {"pending": 2})
    await bridge.wait_idle()

    assert received == [EventType.SYNC_START]
