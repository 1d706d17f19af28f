from dataclasses import asdict
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from duka_sync.entity.actions import (ActionKind, ActionStatus, QueuedAction,
                                      QueueStats, SyncReport)


class QueuedActionResponse(BaseModel):
    id: str
    kind: ActionKind
    resource: str
    payload: Dict[str, Any]
    created_at: datetime
    attempts: int
    status: ActionStatus
    last_error: Optional[str]
    last_attempt_at: Optional[datetime]
    description: Optional[str]

    @staticmethod
    def from_entity(action: QueuedAction) -> "QueuedActionResponse":
        data = asdict(action)
        data.pop("sequence")
        return QueuedActionResponse(**data)


class QueuedActionListResponse(BaseModel):
    total: int
    items: List[QueuedActionResponse]


class QueueStatsResponse(BaseModel):
    total: int
    pending: int
    failed: int
    degraded: bool
    online: bool

    @staticmethod
    def from_entity(stats: QueueStats) -> "QueueStatsResponse":
        return QueueStatsResponse(**asdict(stats))


class SyncReportResponse(BaseModel):
    synced: int
    failed: int
    retried: int
    skipped: int
    errors: List[str]

    @staticmethod
    def from_entity(report: SyncReport) -> "SyncReportResponse":
        return SyncReportResponse(**asdict(report))


class ClearQueueResponse(BaseModel):
    removed: int


class NetworkStateResponse(BaseModel):
    online: bool
