"""
Waiting list: FIFO queue of deferred registration requests per event.

Active entries hold dense positions 1..N. Withdrawing or promoting an entry
closes the gap by shifting every later entry up by one, inside the same
event claim, so positions never repeat or skip.

Promotion is first-fit: the lowest-positioned entry whose whole group fits
the free spots is promoted; larger groups ahead of it keep their place.
"""

from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from gameone.core.clock import utcnow
from gameone.core.config import get_settings
from gameone.core.exceptions import DuplicateRegistrationError, InvalidStateError, NotFoundError
from gameone.core.logging import get_logger
from gameone.core.metrics import record_waiting_list_operation
from gameone.models.enums import NotificationKind, PaymentMethod, RegistrationType
from gameone.models.pending_payment import PendingPayment
from gameone.models.waiting_list import WaitingListEntry
from gameone.schemas.registration import Requester, identity_fields, identity_of, normalize_friends
from gameone.services import audit_service, capacity_service, notification_service, payment_service
from gameone.services.locking import lock_event, retry_on_conflict

logger = get_logger(__name__)
settings = get_settings()

RESOURCE = "WaitingListEntry"


async def get_entry(db: AsyncSession, entry_id: int) -> WaitingListEntry:
    result = await db.execute(
        select(WaitingListEntry)
        .where(WaitingListEntry.id == entry_id)
        .execution_options(populate_existing=True)
    )
    entry = result.scalar_one_or_none()
    if not entry:
        raise NotFoundError(RESOURCE, entry_id)
    return entry


async def list_entries(db: AsyncSession, event_id: int) -> list[WaitingListEntry]:
    """Active entries in queue order."""
    result = await db.execute(
        select(WaitingListEntry)
        .where(WaitingListEntry.event_id == event_id, WaitingListEntry.promoted_at.is_(None))
        .order_by(WaitingListEntry.position.asc())
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def _last_position(db: AsyncSession, event_id: int) -> int:
    result = await db.execute(
        select(func.coalesce(func.max(WaitingListEntry.position), 0)).where(
            WaitingListEntry.event_id == event_id,
            WaitingListEntry.promoted_at.is_(None),
        )
    )
    return int(result.scalar_one())


async def _close_gap(db: AsyncSession, event_id: int, position: int) -> None:
    await db.execute(
        update(WaitingListEntry)
        .where(
            WaitingListEntry.event_id == event_id,
            WaitingListEntry.promoted_at.is_(None),
            WaitingListEntry.position > position,
        )
        .values(position=WaitingListEntry.position - 1)
        .execution_options(synchronize_session="evaluate")
    )


@retry_on_conflict
async def enqueue(
    db: AsyncSession,
    event_id: int,
    requester: Requester,
    friends: Optional[list] = None,
    payment_method: PaymentMethod = PaymentMethod.QR_CODE,
    dietary_requirements: Optional[str] = None,
    special_requests: Optional[str] = None,
    actor: Optional[str] = None,
) -> WaitingListEntry:
    """Append a request to the tail of the event's queue."""
    friends_data = normalize_friends(friends, settings.MAX_GROUP_SIZE, leader=requester)
    await lock_event(db, event_id)

    reason = await payment_service.find_duplicate(db, event_id, requester, friends_data)
    if reason:
        raise DuplicateRegistrationError(
            f"{requester.label} cannot join the waiting list for event {event_id}: {reason}",
            event_id=event_id,
            reason=reason,
        )

    entry = WaitingListEntry(
        event_id=event_id,
        **identity_fields(requester),
        position=await _last_position(db, event_id) + 1,
        registration_type=RegistrationType.GROUP if friends_data else RegistrationType.INDIVIDUAL,
        is_group_entry=bool(friends_data),
        group_size=1 + len(friends_data),
        friends_data=friends_data,
        dietary_requirements=dietary_requirements,
        special_requests=special_requests,
        payment_method=payment_method,
    )
    db.add(entry)
    await db.flush()

    await audit_service.record(
        db, actor, "waiting_list.enqueued", RESOURCE, entry.id,
        event_id=event_id, position=entry.position, group_size=entry.group_size,
    )
    record_waiting_list_operation("enqueue")
    logger.info("waiting_list_enqueued", entry_id=entry.id, position=entry.position, group_size=entry.group_size)
    return entry


async def _remove(db: AsyncSession, entry: WaitingListEntry, actor: Optional[str], **details) -> None:
    """Delete an active entry and renumber the entries behind it."""
    entry_id, event_id, position = entry.id, entry.event_id, entry.position
    await db.delete(entry)
    await db.flush()
    await _close_gap(db, event_id, position)

    await audit_service.record(
        db, actor, "waiting_list.withdrawn", RESOURCE, entry_id,
        event_id=event_id, position=position, **details,
    )
    record_waiting_list_operation("withdraw")
    logger.info("waiting_list_withdrawn", entry_id=entry_id, position=position, **details)


@retry_on_conflict
async def dequeue(db: AsyncSession, entry_id: int, actor: Optional[str] = None) -> None:
    """Withdraw an active entry and renumber the entries behind it."""
    entry = await get_entry(db, entry_id)
    await lock_event(db, entry.event_id)
    entry = await get_entry(db, entry_id)
    if not entry.is_active:
        raise InvalidStateError(RESOURCE, entry_id, "PROMOTED", "withdraw")
    await _remove(db, entry, actor)


async def withdraw_identity(
    db: AsyncSession,
    event_id: int,
    identity: dict,
    actor: Optional[str] = None,
) -> list[int]:
    """
    Withdraw the active entries queued by this user or guest, e.g. when an
    organizer registers them directly. The caller holds the event claim.
    """
    if identity["user_id"] is not None:
        def same(entry):
            return entry.user_id == identity["user_id"]
    else:
        def same(entry):
            return (entry.guest_email, entry.guest_name) == (identity["guest_email"], identity["guest_name"])

    withdrawn = []
    for entry in await list_entries(db, event_id):
        if same(entry):
            withdrawn.append(entry.id)
            await _remove(db, entry, actor, reason="registered_directly")
    return withdrawn


@retry_on_conflict
async def promote_next(
    db: AsyncSession,
    event_id: int,
    actor: Optional[str] = None,
    spots: Optional[int] = None,
) -> Optional[PendingPayment]:
    """
    Turn the first entry that fits the free spots into a pending payment.
    Returns None when nothing is free or nothing fits.

    `spots` caps the free spots considered. Entries whose requester or
    friends got registered or admitted some other way since queueing are
    withdrawn instead of promoted.
    """
    event = await lock_event(db, event_id)
    available = await capacity_service.admission_spots(db, event_id)
    if spots is not None:
        available = min(available, spots)
    if available <= 0:
        return None

    chosen = None
    for entry in await list_entries(db, event_id):
        if entry.group_size > available:
            record_waiting_list_operation("skip")
            logger.info(
                "waiting_list_entry_skipped",
                entry_id=entry.id,
                position=entry.position,
                group_size=entry.group_size,
                available=available,
            )
            continue
        stale = await payment_service.duplicate_reason(
            db, event_id, identity_of(entry), entry.friends_data, include_queue=False
        )
        if stale:
            await _remove(db, entry, actor, reason=stale)
            continue
        chosen = entry
        break
    if chosen is None:
        return None

    position = chosen.position
    payment = await payment_service.admit(
        db,
        event,
        identity_of(chosen),
        list(chosen.friends_data or []),
        payment_method=PaymentMethod(chosen.payment_method),
        dietary_requirements=chosen.dietary_requirements,
        special_requests=chosen.special_requests,
        promoted_from=chosen,
        actor=actor,
        notify_payer=False,
    )

    chosen.promoted_at = utcnow()
    chosen.pending_payment_id = payment.id
    chosen.position = None
    await db.flush()
    await _close_gap(db, event_id, position)

    await audit_service.record(
        db, actor, "waiting_list.promoted", RESOURCE, chosen.id,
        event_id=event_id, position=position, pending_payment_id=payment.id,
    )
    record_waiting_list_operation("promote")
    await notification_service.notify(
        db,
        NotificationKind.WAITING_LIST_PROMOTED,
        chosen,
        position=position,
        **payment_service.payment_instructions(payment),
    )
    logger.info("waiting_list_promoted", entry_id=chosen.id, position=position, pending_payment_id=payment.id)
    return payment


async def recover_capacity(
    db: AsyncSession,
    event_id: int,
    actor: Optional[str] = None,
) -> list[PendingPayment]:
    """
    Called after spots may have been freed (cancellation, rejection,
    expiry, capacity increase). Promotes entries until nothing else fits.

    With awaiting payments holding their spots, each promotion shrinks the
    admission spots and the loop ends by itself. Without holds, promotions
    are budgeted against the spots free when recovery started.
    """
    budget = None
    if not settings.ADMISSION_HOLDS_AWAITING:
        budget = await capacity_service.available_spots(db, event_id)

    promoted = []
    while budget is None or budget > 0:
        payment = await promote_next(db, event_id, actor=actor, spots=budget)
        if payment is None:
            break
        promoted.append(payment)
        if budget is not None:
            budget -= payment.total_participants
    logger.info("capacity_recovery", promoted=len(promoted))
    return promoted
