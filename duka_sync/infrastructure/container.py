"""
Контейнер для infrastructure уровня.
"""

from dependency_injector import containers, providers

from duka_sync.infrastructure.network.monitor import (ConnectivityProbe,
                                                      NetworkMonitor)
from duka_sync.infrastructure.persistence.backends import (MemoryBackend,
                                                           SqlAlchemyBackend)
from duka_sync.infrastructure.persistence.db import Database
from duka_sync.infrastructure.persistence.store import QueueStore


class InfrastructureContainer(containers.DeclarativeContainer):

    config = providers.Configuration()
    events = providers.Dependency()

    db = providers.Singleton(
        Database,
        db_url=config.DB_URL,
    )

    backend = providers.Selector(
        config.STORAGE_BACKEND,
        sql=providers.Singleton(SqlAlchemyBackend, db=db),
        memory=providers.Singleton(MemoryBackend),
    )

    store = providers.Singleton(
        QueueStore,
        backend=backend,
        events=events,
    )

    monitor = providers.Singleton(NetworkMonitor)

    probe = providers.Singleton(
        ConnectivityProbe,
        monitor=monitor,
        host=config.PROBE_HOST,
        port=config.PROBE_PORT,
        interval=config.PROBE_INTERVAL,
        timeout=config.PROBE_TIMEOUT,
    )
