"""
Pydantic schemas for pending payments and their admin transitions.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from gameone.models.enums import PaymentMethod, PendingPaymentStatus, RegistrationType


class PendingPaymentResponse(BaseModel):
    id: int
    event_id: int
    user_id: Optional[int]
    guest_name: Optional[str]
    guest_email: Optional[str]
    status: PendingPaymentStatus
    registration_type: RegistrationType
    total_participants: int
    friends_data: list
    amount: Decimal
    currency: str
    payment_method: PaymentMethod
    variable_symbol: str
    qr_code_data: Optional[str]
    expires_at: datetime
    paid_at: Optional[datetime]
    verified_at: Optional[datetime]
    processed_at: Optional[datetime]
    cancelled_at: Optional[datetime]
    promoted_from_waiting_list: bool
    waiting_list_position: Optional[int]
    created_at: datetime

    model_config = {"from_attributes": True}


class VerifyPaymentRequest(BaseModel):
    reported_amount: Optional[Decimal] = Field(None, ge=0)
    force: bool = False


class RejectPaymentRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class ExpirySweepResponse(BaseModel):
    expired_ids: list[int]
    count: int
