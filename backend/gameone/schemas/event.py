"""
Pydantic schemas for event-related request/response validation.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class EventCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=2000)
    start_date: datetime
    end_date: Optional[datetime] = None
    venue: Optional[str] = Field(None, max_length=255)
    capacity: int = Field(..., ge=0, le=100000)
    price: Decimal = Field(Decimal("0"), ge=0, max_digits=10, decimal_places=2)
    currency: str = Field("EUR", min_length=3, max_length=3, pattern=r"^[A-Z]{3}$")
    requires_payment: bool = True
    allow_waiting_list: bool = True
    bank_account_id: Optional[int] = None


class EventResponse(BaseModel):
    id: int
    title: str
    description: Optional[str]
    start_date: datetime
    end_date: Optional[datetime]
    venue: Optional[str]
    capacity: int
    price: Decimal
    currency: str
    requires_payment: bool
    allow_waiting_list: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class EventListResponse(BaseModel):
    events: list[EventResponse]
    total: int
    page: int
    page_size: int
    cached: bool = False


class CapacityResponse(BaseModel):
    event_id: int
    capacity: int
    effective_count: int
    available_spots: int
    admission_spots: int
    awaiting_payment: int
    waiting_list_length: int
    unit: str


class CapacityUpdate(BaseModel):
    capacity: int = Field(..., ge=0, le=100000)
