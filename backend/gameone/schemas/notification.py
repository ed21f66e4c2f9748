"""
Pydantic schemas for notification intents and the audit trail.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from gameone.models.enums import NotificationKind


class NotificationResponse(BaseModel):
    id: int
    kind: NotificationKind
    recipient_user_id: Optional[int]
    recipient_email: Optional[str]
    recipient_name: Optional[str]
    event_id: int
    payload: dict
    dispatched_at: Optional[datetime]
    created_at: datetime

    model_config = {"from_attributes": True}


class DispatchRequest(BaseModel):
    notification_ids: list[int] = Field(..., min_length=1, max_length=500)


class DispatchResponse(BaseModel):
    dispatched: int


class AuditLogResponse(BaseModel):
    id: int
    actor: str
    action: str
    resource_type: str
    resource_id: int
    event_id: Optional[int]
    details: dict
    created_at: datetime

    model_config = {"from_attributes": True}
