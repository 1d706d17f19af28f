from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import Select, delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from duka_sync.entity.actions import QueuedAction
from duka_sync.exceptions import RepositoryError
from duka_sync.infrastructure.persistence.db.schema import \
    QueuedAction as QueuedActionModel


class QueuedActionRepository:
    """
    Инкапсуляция операций хранения отложенных действий.
    """

    def __init__(self, session: AsyncSession, *, auto_commit: bool = True) -> None:
        self._session: AsyncSession = session
        self._auto_commit = auto_commit

    async def list_actions(self) -> List[QueuedAction]:
        """
        Все действия в порядке постановки в очередь.
        """
        try:
            stmt: Select[Any] = select(QueuedActionModel).order_by(
                QueuedActionModel.created_at.asc(),
                QueuedActionModel.sequence.asc(),
            )
            rows = (await self._session.execute(stmt)).scalars().all()
            return [self._to_entity(row) for row in rows]
        except (SQLAlchemyError, ValueError) as exc:
            raise RepositoryError("Failed to list queued actions") from exc

    async def upsert(self, action: QueuedAction) -> None:
        """
        Запись действия целиком одной транзакцией.
        """
        try:
            await self._session.merge(self._to_model(action))
            await self._commit()
        except SQLAlchemyError as exc:
            await self._session.rollback()
            raise RepositoryError(
                "Failed to save queued action",
                context={"action_id": action.id},
            ) from exc

    async def delete(self, action_id: str) -> None:
        try:
            await self._session.execute(
                delete(QueuedActionModel).where(QueuedActionModel.id == action_id)
            )
            await self._commit()
        except SQLAlchemyError as exc:
            await self._session.rollback()
            raise RepositoryError(
                "Failed to delete queued action",
                context={"action_id": action_id},
            ) from exc

    async def delete_all(self) -> None:
        try:
            await self._session.execute(delete(QueuedActionModel))
            await self._commit()
        except SQLAlchemyError as exc:
            await self._session.rollback()
            raise RepositoryError("Failed to clear queued actions") from exc

    async def _commit(self) -> None:
        if self._auto_commit:
            await self._session.commit()
        else:
            await self._session.flush()

    @staticmethod
    def _to_model(action: QueuedAction) -> QueuedActionModel:
        return QueuedActionModel(
            id=action.id,
            kind=action.kind,
            resource=action.resource,
            payload=json.dumps(action.payload, default=str),
            created_at=action.created_at,
            sequence=action.sequence,
            attempts=action.attempts,
            status=action.status,
            last_error=action.last_error,
            last_attempt_at=action.last_attempt_at,
            description=action.description,
        )

    @staticmethod
    def _to_entity(model: QueuedActionModel) -> QueuedAction:
        """
        Преобразование модели ORM в объект entity.
        """
        payload: Dict[str, Any] = json.loads(model.payload)
        return QueuedAction(
            id=model.id,
            kind=model.kind,
            resource=model.resource,
            payload=payload,
            created_at=_as_utc(model.created_at),
            sequence=model.sequence,
            attempts=model.attempts,
            status=model.status,
            last_error=model.last_error,
            last_attempt_at=_as_utc(model.last_attempt_at),
            description=model.description,
        )


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite drops tzinfo on the way back.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
