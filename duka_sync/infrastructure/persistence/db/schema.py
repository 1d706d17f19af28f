"""
Определения схемы ORM SQLAlchemy для очереди отложенных действий.
"""

from datetime import datetime

from sqlalchemy import DateTime, Enum, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from duka_sync.entity.actions import ActionKind, ActionStatus
from duka_sync.infrastructure.persistence.db import Base


class QueuedAction(Base):
    __tablename__ = "queued_actions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    kind: Mapped[ActionKind] = mapped_column(Enum(ActionKind), nullable=False)
    resource: Mapped[str] = mapped_column(String(255), nullable=False)
    payload: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[ActionStatus] = mapped_column(
        Enum(ActionStatus), nullable=False, default=ActionStatus.PENDING
    )
    last_error: Mapped[str | None] = mapped_column(String, nullable=True)
    last_attempt_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    description: Mapped[str | None] = mapped_column(String, nullable=True)
