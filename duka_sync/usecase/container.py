"""
Контейнер для usecase слоя
"""

from dependency_injector import containers, providers

from duka_sync.infrastructure.network.monitor import NetworkMonitor
from duka_sync.infrastructure.persistence.store import QueueStore
from duka_sync.messaging.events import EventBridge
from duka_sync.messaging.resolvers import ResolverRegistry
from duka_sync.usecase.queue import RetryPolicy, SyncQueue


class UsecaseContainer(containers.DeclarativeContainer):

    config = providers.Configuration()

    store: providers.Dependency[QueueStore] = providers.Dependency()
    monitor: providers.Dependency[NetworkMonitor] = providers.Dependency()
    events: providers.Dependency[EventBridge] = providers.Dependency()
    resolvers: providers.Dependency[ResolverRegistry] = providers.Dependency()

    retry_policy = providers.Singleton(
        RetryPolicy,
        base_delay=config.RETRY_BASE_DELAY,
        factor=config.RETRY_FACTOR,
        max_delay=config.RETRY_MAX_DELAY,
        max_attempts=config.RETRY_MAX_ATTEMPTS,
    )

    sync_queue = providers.Singleton(
        SyncQueue,
        store=store,
        monitor=monitor,
        events=events,
        resolvers=resolvers,
        policy=retry_policy,
        sync_interval=config.SYNC_INTERVAL,
        online_settle_delay=config.ONLINE_SETTLE_DELAY,
        resolver_timeout=config.RESOLVER_TIMEOUT,
        sync_enabled=config.SYNC_ENABLED,
    )
