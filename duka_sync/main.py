import contextlib
from collections.abc import AsyncIterator
from typing import Optional

import fastapi

from duka_sync.api.handlers.queue.queue_handler import router
from duka_sync.container import Container
from duka_sync.logger import logger
from duka_sync.settings import Settings, settings


def create_container(app_settings: Optional[Settings] = None) -> Container:
    container = Container()
    container.config.from_pydantic(app_settings or settings)
    return container


@contextlib.asynccontextmanager
async def lifespan(app: fastapi.FastAPI) -> AsyncIterator[None]:
    container: Container = app.container
    queue = container.usecase.sync_queue()
    probe = None
    if container.config.PROBE_ENABLED():
        probe = container.infrastructure.probe()
        await probe.check()
        probe.start()

    await queue.start()
    logger.info(
        "Sync queue started, replay %s",
        "enabled" if container.config.SYNC_ENABLED() else "disabled",
    )
    try:
        yield
    finally:
        if probe is not None:
            await probe.stop()
        await queue.stop()
        await container.messaging.rest_resolvers().aclose()
        logger.info("Sync queue stopped")


def create_app(app_settings: Optional[Settings] = None) -> fastapi.FastAPI:
    app = fastapi.FastAPI(title="duka-sync", lifespan=lifespan)
    app.container = create_container(app_settings)
    app.include_router(router)
    return app


app = create_app()
