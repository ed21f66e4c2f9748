"""
Event service handling creation, listing and capacity changes.
"""

from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from gameone.core.clock import as_utc, utcnow
from gameone.core.exceptions import NotFoundError, ValidationError
from gameone.core.logging import get_logger
from gameone.models.bank_account import BankAccount
from gameone.models.event import Event
from gameone.schemas.event import EventCreate
from gameone.services import audit_service, waiting_list_service
from gameone.services.locking import lock_event, retry_on_conflict

logger = get_logger(__name__)


async def create_event(db: AsyncSession, event_data: EventCreate, actor: Optional[str] = None) -> Event:
    """Create a new event. Its whole capacity starts free."""
    if as_utc(event_data.start_date) <= utcnow():
        raise ValidationError("Event start date must be in the future")
    if event_data.end_date and event_data.end_date < event_data.start_date:
        raise ValidationError("Event end date must not precede its start date")

    if event_data.bank_account_id is not None:
        account = await db.get(BankAccount, event_data.bank_account_id)
        if account is None:
            raise NotFoundError("BankAccount", event_data.bank_account_id)

    event = Event(**event_data.model_dump(), version=1)
    db.add(event)
    await db.flush()

    await audit_service.record(
        db, actor, "event.created", "Event", event.id,
        event_id=event.id, capacity=event.capacity, price=event.price,
    )
    logger.info("event_created", event_id=event.id, title=event.title, capacity=event.capacity)
    return event


async def get_event(db: AsyncSession, event_id: int) -> Event:
    result = await db.execute(select(Event).where(Event.id == event_id))
    event = result.scalar_one_or_none()
    if not event:
        raise NotFoundError("Event", event_id)
    return event


async def list_events(
    db: AsyncSession,
    page: int = 1,
    page_size: int = 20,
    upcoming_only: bool = True,
) -> tuple[list[Event], int]:
    """
    List events with pagination.
    Uses the ix_events_start_date index for the upcoming filter and ordering.
    """
    query = select(Event)
    if upcoming_only:
        query = query.where(Event.start_date >= utcnow())

    count_query = select(func.count()).select_from(query.subquery())
    total = (await db.execute(count_query)).scalar()

    events_query = (
        query
        .order_by(Event.start_date.asc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    result = await db.execute(events_query)
    return list(result.scalars().all()), total


@retry_on_conflict
async def update_capacity(
    db: AsyncSession,
    event_id: int,
    capacity: int,
    actor: Optional[str] = None,
) -> Event:
    """
    Change an event's capacity. Usage is recomputed on every check, so the
    new value applies to the next admission. Lowering capacity below the
    current usage keeps existing registrations; raising it offers the new
    spots to the waiting list.
    """
    if capacity < 0:
        raise ValidationError("Capacity must not be negative", capacity=capacity)

    event = await lock_event(db, event_id)
    previous = event.capacity
    event.capacity = capacity
    await db.flush()

    await audit_service.record(
        db, actor, "event.capacity_changed", "Event", event.id,
        event_id=event.id, previous=previous, capacity=capacity,
    )
    logger.info("event_capacity_changed", previous=previous, capacity=capacity)

    if capacity > previous:
        await waiting_list_service.recover_capacity(db, event_id, actor=actor)
    return event
