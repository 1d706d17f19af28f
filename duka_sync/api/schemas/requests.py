from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from duka_sync.entity.actions import ActionKind


class EnqueueActionRequest(BaseModel):
    kind: ActionKind = Field(..., description="Тип операции")
    resource: str = Field(..., min_length=1, max_length=255)
    payload: Dict[str, Any] = Field(default_factory=dict)
    description: Optional[str] = Field(None, max_length=255)


class NetworkStateRequest(BaseModel):
    online: bool
