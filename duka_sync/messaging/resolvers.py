from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, Tuple

from duka_sync.entity.actions import ActionKind
from duka_sync.exceptions import ResolverNotFoundError

Resolver = Callable[[Dict[str, Any]], Awaitable[Any]]


class ResolverRegistry:
    """
    Сопоставление (resource, kind) -> async функция удалённой записи.

    Регистрируется приложением при старте. Sync engine ничего не знает о
    транспорте. Resolver должен быть идемпотентным: после сбоя между
    успешным вызовом и удалением из очереди он будет вызван повторно.
    """

    def __init__(self) -> None:
        self._resolvers: Dict[Tuple[str, ActionKind], Resolver] = {}

    def register(self, resource: str, kind: ActionKind | str, resolver: Resolver) -> None:
        self._resolvers[(resource, ActionKind(kind))] = resolver

    def resolver(self, resource: str, kind: ActionKind | str) -> Callable[[Resolver], Resolver]:
        def decorator(fn: Resolver) -> Resolver:
            self.register(resource, kind, fn)
            return fn

        return decorator

    def get(self, resource: str, kind: ActionKind | str) -> Resolver:
        try:
            return self._resolvers[(resource, ActionKind(kind))]
        except KeyError:
            raise ResolverNotFoundError(resource=resource, kind=kind) from None

    def __contains__(self, key: Tuple[str, ActionKind | str]) -> bool:
        resource, kind = key
        return (resource, ActionKind(kind)) in self._resolvers

    def __len__(self) -> int:
        return len(self._resolvers)
