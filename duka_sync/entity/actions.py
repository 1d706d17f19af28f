from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class ActionKind(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class ActionStatus(str, Enum):
    PENDING = "pending"
    SYNCING = "syncing"
    FAILED = "failed"


@dataclass(slots=True)
class QueuedAction:
    """
    Отложенная мутация, ожидающая воспроизведения на удалённой стороне.
    """

    id: str
    kind: ActionKind
    resource: str
    payload: Dict[str, Any]
    created_at: datetime
    sequence: int = 0
    attempts: int = 0
    status: ActionStatus = ActionStatus.PENDING
    last_error: Optional[str] = None
    last_attempt_at: Optional[datetime] = None
    description: Optional[str] = None

    @property
    def order_key(self) -> tuple[datetime, int]:
        return self.created_at, self.sequence

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "resource": self.resource,
            "payload": self.payload,
            "created_at": self.created_at.isoformat(),
            "sequence": self.sequence,
            "attempts": self.attempts,
            "status": self.status.value,
            "last_error": self.last_error,
            "last_attempt_at": (
                self.last_attempt_at.isoformat() if self.last_attempt_at else None
            ),
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "QueuedAction":
        last_attempt_at = raw.get("last_attempt_at")
        return cls(
            id=raw["id"],
            kind=ActionKind(raw["kind"]),
            resource=raw["resource"],
            payload=dict(raw.get("payload") or {}),
            created_at=datetime.fromisoformat(raw["created_at"]),
            sequence=int(raw.get("sequence", 0)),
            attempts=int(raw.get("attempts", 0)),
            status=ActionStatus(raw.get("status", ActionStatus.PENDING.value)),
            last_error=raw.get("last_error"),
            last_attempt_at=(
                datetime.fromisoformat(last_attempt_at) if last_attempt_at else None
            ),
            description=raw.get("description"),
        )


@dataclass(slots=True)
class SyncReport:
    synced: int = 0
    failed: int = 0
    retried: int = 0
    skipped: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return self.synced + self.failed + self.retried


@dataclass(slots=True)
class QueueStats:
    total: int
    pending: int
    failed: int
    degraded: bool
    online: bool
