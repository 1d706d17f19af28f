from __future__ import annotations

import asyncio
import contextlib
import inspect
from typing import Any, Awaitable, Callable, List, Optional, Union

from duka_sync.logger import logger

ChangeListener = Callable[[bool], Union[None, Awaitable[None]]]


class NetworkMonitor:
    """
    Единый источник правды о состоянии сети и подписка на переходы online/offline.
    """

    def __init__(self, initial: bool = True) -> None:
        self._online = initial
        self._listeners: List[ChangeListener] = []
        self._tasks: set[asyncio.Task[Any]] = set()

    def is_online(self) -> bool:
        return self._online

    def on_change(self, callback: ChangeListener) -> Callable[[], None]:
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def set_online(self, online: bool) -> None:
        """
        Вход платформенного сигнала. Слушатели вызываются только на реальный переход.
        """
        if online == self._online:
            return
        self._online = online
        logger.info("Network state changed: %s", "online" if online else "offline")
        for listener in list(self._listeners):
            try:
                result = listener(online)
            except Exception:
                logger.exception("Network listener failed")
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)


class ConnectivityProbe:
    """
    Периодически проверяет доступность бэкенда TCP-соединением и передаёт
    результат в NetworkMonitor.
    """

    def __init__(
        self,
        monitor: NetworkMonitor,
        host: str,
        port: int,
        *,
        interval: float = 15.0,
        timeout: float = 3.0,
    ) -> None:
        self._monitor = monitor
        self._host = host
        self._port = port
        self._interval = interval
        self._timeout = timeout
        self._task: Optional[asyncio.Task[None]] = None

    async def check(self) -> bool:
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(self._host, self._port),
                timeout=self._timeout,
            )
        except (OSError, asyncio.TimeoutError) as exc:
            logger.debug("Probe %s:%s failed: %s", self._host, self._port, exc)
            self._monitor.set_online(False)
            return False

        writer.close()
        with contextlib.suppress(OSError):
            await writer.wait_closed()
        self._monitor.set_online(True)
        return True

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def _run(self) -> None:
        while True:
            await self.check()
            await asyncio.sleep(self._interval)
