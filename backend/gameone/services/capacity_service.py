"""
Capacity accounting for events.

CAPACITY MODEL
==============

Usage is recomputed from row state on every call. There is no counter on
the event and no cache, so capacity edits by an admin and every status
change are visible to the very next check. Event sizes are bounded
(hundreds of rows), so the scan is cheap.

What consumes capacity:
  - Registrations in CONFIRMED or ATTENDED
  - Pending payments in PAYMENT_RECEIVED, and PROCESSED ones that have not
    yet been materialised into registrations (a processed payment and the
    registration it produced are the same spot, counted once)

What does not:
  - Registrations in PENDING, CANCELLED, REJECTED, NO_SHOW
  - Pending payments in AWAITING_PAYMENT, EXPIRED, CANCELLED

Admission is stricter than usage. With ADMISSION_HOLDS_AWAITING on, new
requests, promotions and organizer registrations also leave room for every
payment still AWAITING_PAYMENT, so two requesters are never both sent
payment instructions for the last spot. Verification only needs the spot
to be free in effective usage, since the payment's own hold is released
by the transition.

Units:
  - "slot" (default): one spot per registration slot. A group leader row
    counts 1 and its member rows count 0; a counted pending payment
    counts 1 regardless of how many friends it carries.
  - "person": every counted registration row counts 1 and a counted
    pending payment counts its total_participants.
"""

import time
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import and_, exists, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from gameone.core.config import get_settings
from gameone.core.exceptions import ValidationError
from gameone.core.metrics import capacity_check_latency
from gameone.models.enums import (
    COUNTED_REGISTRATION_STATUSES,
    PendingPaymentStatus,
)
from gameone.models.pending_payment import PendingPayment
from gameone.models.registration import Registration
from gameone.models.waiting_list import WaitingListEntry
from gameone.services.locking import load_event

settings = get_settings()

SLOT = "slot"
PERSON = "person"


@dataclass
class CapacitySummary:
    event_id: int
    capacity: int
    effective_count: int
    available_spots: int
    admission_spots: int
    awaiting_payment: int
    waiting_list_length: int
    unit: str


def _resolve_unit(unit: Optional[str]) -> str:
    unit = unit or settings.CAPACITY_UNIT
    if unit not in (SLOT, PERSON):
        raise ValidationError(f"Unknown capacity unit '{unit}'", unit=unit)
    return unit


def _counted_payment_clause():
    materialised = exists().where(Registration.pending_payment_id == PendingPayment.id)
    return or_(
        PendingPayment.status == PendingPaymentStatus.PAYMENT_RECEIVED,
        and_(PendingPayment.status == PendingPaymentStatus.PROCESSED, ~materialised),
    )


async def effective_count(db: AsyncSession, event_id: int, unit: Optional[str] = None) -> int:
    """Capacity units currently consumed by the event."""
    unit = _resolve_unit(unit)
    started = time.perf_counter()

    registration_query = select(func.count(Registration.id)).where(
        Registration.event_id == event_id,
        Registration.status.in_(COUNTED_REGISTRATION_STATUSES),
    )
    if unit == SLOT:
        registration_query = registration_query.where(Registration.group_leader_id.is_(None))
    registrations = (await db.execute(registration_query)).scalar_one()

    payment_measure = func.count(PendingPayment.id) if unit == SLOT else func.sum(PendingPayment.total_participants)
    payments = (
        await db.execute(
            select(func.coalesce(payment_measure, 0)).where(
                PendingPayment.event_id == event_id,
                _counted_payment_clause(),
            )
        )
    ).scalar_one()

    capacity_check_latency.observe(time.perf_counter() - started)
    return int(registrations) + int(payments)


async def available_spots(db: AsyncSession, event_id: int, unit: Optional[str] = None) -> int:
    event = await load_event(db, event_id)
    used = await effective_count(db, event_id, unit)
    return max(0, event.capacity - used)


async def has_capacity(
    db: AsyncSession,
    event_id: int,
    requested: int = 1,
    unit: Optional[str] = None,
) -> bool:
    return await available_spots(db, event_id, unit) >= requested


async def capacity_summary(db: AsyncSession, event_id: int, unit: Optional[str] = None) -> CapacitySummary:
    unit = _resolve_unit(unit)
    event = await load_event(db, event_id)
    used = await effective_count(db, event_id, unit)

    awaiting = (
        await db.execute(
            select(func.count(PendingPayment.id)).where(
                PendingPayment.event_id == event_id,
                PendingPayment.status == PendingPaymentStatus.AWAITING_PAYMENT,
            )
        )
    ).scalar_one()
    held = await held_count(db, event_id, unit) if settings.ADMISSION_HOLDS_AWAITING else 0
    queued = (
        await db.execute(
            select(func.count(WaitingListEntry.id)).where(
                WaitingListEntry.event_id == event_id,
                WaitingListEntry.promoted_at.is_(None),
            )
        )
    ).scalar_one()

    return CapacitySummary(
        event_id=event_id,
        capacity=event.capacity,
        effective_count=used,
        available_spots=max(0, event.capacity - used),
        admission_spots=max(0, event.capacity - used - held),
        awaiting_payment=int(awaiting),
        waiting_list_length=int(queued),
        unit=unit,
    )


def units_for(participants: int, unit: Optional[str] = None) -> int:
    """Capacity units a group of `participants` consumes once counted."""
    return 1 if _resolve_unit(unit) == SLOT else participants


async def held_count(db: AsyncSession, event_id: int, unit: Optional[str] = None) -> int:
    """Capacity units held by admitted requests that have not paid yet."""
    unit = _resolve_unit(unit)
    measure = func.count(PendingPayment.id) if unit == SLOT else func.sum(PendingPayment.total_participants)
    result = await db.execute(
        select(func.coalesce(measure, 0)).where(
            PendingPayment.event_id == event_id,
            PendingPayment.status == PendingPaymentStatus.AWAITING_PAYMENT,
        )
    )
    return int(result.scalar_one())


async def admission_spots(db: AsyncSession, event_id: int, unit: Optional[str] = None) -> int:
    """Spots that may still be offered to new requests or promotions."""
    available = await available_spots(db, event_id, unit)
    if not settings.ADMISSION_HOLDS_AWAITING:
        return available
    return max(0, available - await held_count(db, event_id, unit))


async def can_admit(
    db: AsyncSession,
    event_id: int,
    requested: int = 1,
    unit: Optional[str] = None,
) -> bool:
    return await admission_spots(db, event_id, unit) >= requested
