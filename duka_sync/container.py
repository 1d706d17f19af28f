"""
Корневой контейнер, который подключает все подконтейнеры.
"""

from dependency_injector import containers, providers

from duka_sync.infrastructure.container import InfrastructureContainer
from duka_sync.messaging.container import MessagingContainer
from duka_sync.usecase.container import UsecaseContainer


class Container(containers.DeclarativeContainer):

    config = providers.Configuration()
    wiring_config = containers.WiringConfiguration(
        modules=["duka_sync.api.handlers.queue.queue_handler"],
    )

    messaging = providers.Container(
        MessagingContainer,
        config=config,
    )

    infrastructure = providers.Container(
        InfrastructureContainer,
        config=config,
        events=messaging.events,
    )

    usecase = providers.Container(
        UsecaseContainer,
        config=config,
        store=infrastructure.store,
        monitor=infrastructure.monitor,
        events=messaging.events,
        resolvers=messaging.resolvers,
    )
