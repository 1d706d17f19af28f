"""
Контейнер для событий и resolver'ов.
"""

from dependency_injector import containers, providers

from duka_sync.messaging.events import EventBridge
from duka_sync.messaging.resolvers import ResolverRegistry
from duka_sync.messaging.rest import RestResolvers


def build_registry(rest: RestResolvers) -> ResolverRegistry:
    return rest.register_all(ResolverRegistry())


class MessagingContainer(containers.DeclarativeContainer):
    config = providers.Configuration()

    events = providers.Singleton(EventBridge)

    rest_resolvers = providers.Singleton(
        RestResolvers.from_settings,
        base_url=config.REMOTE_BASE_URL,
        api_key=config.REMOTE_API_KEY,
        timeout=config.REMOTE_TIMEOUT,
    )

    resolvers = providers.Singleton(
        build_registry,
        rest=rest_resolvers,
    )
