from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict


class EventType(str, Enum):
    QUEUED = "queued"
    SYNC_START = "sync-start"
    SYNCED = "synced"
    SYNC_ERROR = "sync-error"
    SYNC_FAILED = "sync-failed"
    QUEUE_EMPTY = "queue-empty"
    STORAGE_DEGRADED = "storage-degraded"
    STORAGE_RECOVERED = "storage-recovered"
    DISCARDED = "discarded"
    CLEARED = "cleared"


@dataclass(slots=True, frozen=True)
class QueueEvent:
    type: EventType
    detail: Dict[str, Any]
    emitted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
