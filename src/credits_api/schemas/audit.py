from datetime import datetime
from typing import Any, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class AuditLogEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    admin_id: UUID
    action_type: str
    target_type: str
    target_id: str
    before_state: Optional[dict[str, Any]] = None
    after_state: Optional[dict[str, Any]] = None
    reason: Optional[str] = None
    created_at: datetime


class AuditLogPageResponse(BaseModel):
    success: Literal[True] = True
    entries: list[AuditLogEntryResponse]
    total_count: int
    limit: int
    offset: int
