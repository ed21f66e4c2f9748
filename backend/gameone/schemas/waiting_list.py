"""
Pydantic schemas for waiting list entries.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from gameone.models.enums import RegistrationType


class WaitingListEntryResponse(BaseModel):
    id: int
    event_id: int
    user_id: Optional[int]
    guest_name: Optional[str]
    position: Optional[int]
    registration_type: RegistrationType
    is_group_entry: bool
    group_size: int
    friends_data: list
    promoted_at: Optional[datetime]
    pending_payment_id: Optional[int]
    created_at: datetime

    model_config = {"from_attributes": True}
