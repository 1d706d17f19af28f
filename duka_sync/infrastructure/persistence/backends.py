"""
Привязки хранилища (persistence binding) для очереди: get-all / put / delete.
"""

from __future__ import annotations

from typing import Any, Dict, List, Protocol

from duka_sync.entity.actions import QueuedAction
from duka_sync.infrastructure.persistence.db import Database
from duka_sync.infrastructure.persistence.repositories.actions import \
    QueuedActionRepository


class StorageBackend(Protocol):

    async def get_all(self) -> List[QueuedAction]: ...

    async def put(self, action: QueuedAction) -> None: ...

    async def delete(self, action_id: str) -> None: ...

    async def clear(self) -> None: ...

    async def close(self) -> None: ...


class MemoryBackend:
    """
    Хранит записи как словари. Один экземпляр на несколько QueueStore
    имитирует перезапуск процесса.
    """

    def __init__(self) -> None:
        self.records: Dict[str, Dict[str, Any]] = {}

    async def get_all(self) -> List[QueuedAction]:
        return [QueuedAction.from_dict(raw) for raw in self.records.values()]

    async def put(self, action: QueuedAction) -> None:
        self.records[action.id] = action.to_dict()

    async def delete(self, action_id: str) -> None:
        self.records.pop(action_id, None)

    async def clear(self) -> None:
        self.records.clear()

    async def close(self) -> None:
        return None


class SqlAlchemyBackend:
    """
    Локальная БД (по умолчанию SQLite через aiosqlite).
    """

    def __init__(self, db: Database) -> None:
        self._db = db
        self._schema_ready = False

    async def get_all(self) -> List[QueuedAction]:
        await self._ensure_schema()
        async with self._db.connection() as session:
            return await QueuedActionRepository(session).list_actions()

    async def put(self, action: QueuedAction) -> None:
        await self._ensure_schema()
        async with self._db.connection() as session:
            await QueuedActionRepository(session).upsert(action)

    async def delete(self, action_id: str) -> None:
        await self._ensure_schema()
        async with self._db.connection() as session:
            await QueuedActionRepository(session).delete(action_id)

    async def clear(self) -> None:
        await self._ensure_schema()
        async with self._db.connection() as session:
            await QueuedActionRepository(session).delete_all()

    async def close(self) -> None:
        await self._db.dispose()

    async def _ensure_schema(self) -> None:
        if not self._schema_ready:
            await self._db.create_all()
            self._schema_ready = True
