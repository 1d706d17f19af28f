from __future__ import annotations

import asyncio

from duka_sync.container import Container
from duka_sync.logger import logger
from duka_sync.settings import settings


async def main() -> None:
    """
    Запуск очереди как отдельный автономный процесс: проверка сети,
    периодическая синхронизация и разбор очереди после перезапуска.
    Воркер нужен только там, где нет API процесса на том же DB_URL.
    """
    if not settings.SYNC_ENABLED:
        logger.error("Sync worker not started: SYNC_ENABLED is false")
        return

    container = Container()
    container.config.from_pydantic(settings)

    queue = container.usecase.sync_queue()
    probe = container.infrastructure.probe()

    if settings.PROBE_ENABLED:
        await probe.check()
        probe.start()
    await queue.start()
    logger.info("Sync worker started with %s queued actions", queue.count())

    try:
        await asyncio.Future()
    finally:
        await probe.stop()
        await queue.stop()
        await container.messaging.rest_resolvers().aclose()


if __name__ == "__main__":
    asyncio.run(main())
