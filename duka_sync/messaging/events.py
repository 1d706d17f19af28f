from __future__ import annotations

import asyncio
import inspect
from collections import defaultdict
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from duka_sync.entity.events import EventType, QueueEvent
from duka_sync.logger import logger

EventHandler = Callable[[QueueEvent], Union[None, Awaitable[None]]]
Unsubscribe = Callable[[], None]


class EventBridge:
    """
    Рассылает события жизненного цикла очереди подписчикам (UI, логирование).

    Доставка не более одного раза каждому текущему подписчику, без повторной
    отправки пропущенных событий поздним подписчикам.
    """

    def __init__(self) -> None:
        self._handlers: Dict[Optional[EventType], List[EventHandler]] = defaultdict(list)
        self._tasks: set[asyncio.Task[Any]] = set()

    def subscribe(self, event_type: EventType | str, handler: EventHandler) -> Unsubscribe:
        return self._add(EventType(event_type), handler)

    def subscribe_all(self, handler: EventHandler) -> Unsubscribe:
        """
        Подписка на все типы событий.
        """
        return self._add(None, handler)

    def emit(self, event_type: EventType | str, detail: Optional[Dict[str, Any]] = None) -> QueueEvent:
        event = QueueEvent(type=EventType(event_type), detail=dict(detail or {}))
        # Snapshot: handlers added during delivery only see later emissions.
        handlers = [*self._handlers.get(event.type, ()), *self._handlers.get(None, ())]
        for handler in handlers:
            self._deliver(handler, event)
        return event

    async def wait_idle(self) -> None:
        """
        Дожидается завершения асинхронных обработчиков.
        """
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _add(self, key: Optional[EventType], handler: EventHandler) -> Unsubscribe:
        self._handlers[key].append(handler)

        def unsubscribe() -> None:
            handlers = self._handlers.get(key)
            if handlers and handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def _deliver(self, handler: EventHandler, event: QueueEvent) -> None:
        try:
            result = handler(event)
        except Exception:
            logger.exception("Event handler failed for %s", event.type.value)
            return

        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Async event handler failed: %s", exc, exc_info=exc)
