"""
Resolver'ы для PostgREST-совместимого API (Supabase REST).
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

import httpx

from duka_sync.entity.actions import ActionKind
from duka_sync.exceptions import (DuplicateActionError, PermanentSyncError,
                                  TransientSyncError)
from duka_sync.logger import logger
from duka_sync.messaging.resolvers import Resolver, ResolverRegistry

DEFAULT_TABLES: Mapping[str, str] = {
    "product": "products",
    "order": "orders",
    "customer": "customers",
}

TRANSIENT_STATUSES = frozenset({408, 425, 429})
# PostgreSQL unique_violation. Other 409 codes such as 23503 are rejections.
UNIQUE_VIOLATION = "23505"


class RestResolvers:

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        tables: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._client = client
        self._tables: Dict[str, str] = dict(tables or DEFAULT_TABLES)

    @classmethod
    def from_settings(
        cls,
        base_url: str,
        api_key: str,
        timeout: float,
        tables: Optional[Mapping[str, str]] = None,
    ) -> "RestResolvers":
        headers = {"Content-Type": "application/json", "Prefer": "return=minimal"}
        if api_key:
            headers["apikey"] = api_key
            headers["Authorization"] = f"Bearer {api_key}"
        client = httpx.AsyncClient(base_url=base_url, headers=headers, timeout=timeout)
        return cls(client, tables=tables)

    def register_all(self, registry: ResolverRegistry) -> ResolverRegistry:
        for resource in self._tables:
            registry.register(resource, ActionKind.CREATE, self._creator(resource))
            registry.register(resource, ActionKind.UPDATE, self._updater(resource))
            registry.register(resource, ActionKind.DELETE, self._deleter(resource))
        return registry

    async def aclose(self) -> None:
        await self._client.aclose()

    def _creator(self, resource: str) -> Resolver:
        async def create(payload: Dict[str, Any]) -> None:
            response = await self._send("POST", self._tables[resource], json=payload)
            if response.status_code == 409 and _error_code(response) == UNIQUE_VIOLATION:
                raise DuplicateActionError(
                    f"{resource} already exists",
                    context={"resource": resource},
                )
            self._check(resource, response)

        return create

    def _updater(self, resource: str) -> Resolver:
        async def update(payload: Dict[str, Any]) -> None:
            entity_id = _require_id(resource, payload)
            data = payload.get("data")
            if data is None:
                data = {key: value for key, value in payload.items() if key != "id"}
            response = await self._send(
                "PATCH",
                self._tables[resource],
                params={"id": f"eq.{entity_id}"},
                json=data,
                headers={"Prefer": "return=representation"},
            )
            self._check(resource, response)
            if response.status_code == 200 and _json_body(response) == []:
                raise PermanentSyncError(
                    f"{resource} {entity_id} no longer exists",
                    context={"resource": resource, "id": str(entity_id)},
                )

        return update

    def _deleter(self, resource: str) -> Resolver:
        async def delete(payload: Dict[str, Any]) -> None:
            entity_id = _require_id(resource, payload)
            response = await self._send(
                "DELETE",
                self._tables[resource],
                params={"id": f"eq.{entity_id}"},
            )
            if response.status_code == 404:
                # Already gone: a replay after a crash.
                return
            self._check(resource, response)

        return delete

    async def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._client.request(method, f"/{path}", **kwargs)
        except httpx.TransportError as exc:
            raise TransientSyncError(
                f"{method} /{path} failed: {exc}",
                context={"path": path},
            ) from exc

    @staticmethod
    def _check(resource: str, response: httpx.Response) -> None:
        status_code = response.status_code
        if status_code < 400:
            return
        context = {"resource": resource, "status_code": status_code}
        message = f"{resource}: HTTP {status_code} {response.text[:200]}"
        if status_code in TRANSIENT_STATUSES or status_code >= 500:
            raise TransientSyncError(message, context=context)
        logger.warning("Remote rejected %s: %s", resource, message, extra=context)
        raise PermanentSyncError(message, context=context)


def _require_id(resource: str, payload: Dict[str, Any]) -> Any:
    entity_id = payload.get("id")
    if entity_id is None:
        raise PermanentSyncError(
            f"{resource} payload is missing 'id'",
            context={"resource": resource},
        )
    return entity_id


def _json_body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return None


def _error_code(response: httpx.Response) -> Optional[str]:
    body = _json_body(response)
    return body.get("code") if isinstance(body, dict) else None
