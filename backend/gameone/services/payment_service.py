"""
Pending payment lifecycle: admission, verification, rejection and expiry.

STATE MACHINE
=============

    AWAITING_PAYMENT --record--> PAYMENT_RECEIVED --process--> PROCESSED
          |   |                        |
          |   +--reject--> CANCELLED <-+
          +--expire (deadline passed)--> EXPIRED

PROCESSED, EXPIRED and CANCELLED are terminal. Every transition runs with
the owning event claimed (see locking.py) and writes one audit row.

Admission decides between three outcomes for a request:
  - capacity for all participants -> new pending payment (AWAITING_PAYMENT)
  - no capacity, waiting list on -> waiting list entry
  - free event -> pending payment verified on the spot, registrations created

A pending payment in AWAITING_PAYMENT is not part of effective capacity
usage, but admission leaves room for it (see capacity_service). Capacity
is checked again when the payment is recorded, which only fails after an
organizer lowered the capacity or forced registrations in.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional, Union

from sqlalchemy import and_, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from gameone.core.clock import NO_DEADLINE, as_utc, utcnow
from gameone.core.config import get_settings
from gameone.core.exceptions import (
    AmountMismatchError,
    CapacityExceededError,
    ConcurrencyConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from gameone.core.logging import get_logger
from gameone.core.metrics import record_payment_transition, record_registration_outcome
from gameone.models.enums import (
    OPEN_PAYMENT_STATUSES,
    NotificationKind,
    PaymentMethod,
    PendingPaymentStatus,
    RegistrationType,
)
from gameone.models.event import Event
from gameone.models.pending_payment import PendingPayment
from gameone.models.registration import Registration
from gameone.models.waiting_list import WaitingListEntry
from gameone.schemas.registration import Requester, guest_key, identity_fields, identity_of, normalize_friends
from gameone.services import (
    audit_service,
    capacity_service,
    notification_service,
    qr_payment,
    registration_service,
    waiting_list_service,
)
from gameone.services.locking import lock_event, retry_on_conflict

logger = get_logger(__name__)
settings = get_settings()

# Registration request outcomes
PENDING_PAYMENT = "pending_payment"
WAITLISTED = "waitlisted"
REGISTERED = "registered"
DUPLICATE = "duplicate"
FULL = "full"

RESOURCE = "PendingPayment"


@dataclass
class RegistrationOutcome:
    outcome: str
    reason: Optional[str] = None
    pending_payment: Optional[PendingPayment] = None
    waiting_list_entry: Optional[WaitingListEntry] = None
    registrations: list[Registration] = field(default_factory=list)


def _resolve_expiry(now: datetime, ttl: Optional[timedelta]) -> datetime:
    if ttl is None and settings.PAYMENT_TTL_HOURS:
        ttl = timedelta(hours=settings.PAYMENT_TTL_HOURS)
    if ttl is None:
        return NO_DEADLINE
    if ttl <= timedelta(0):
        raise ValidationError("Payment deadline must be in the future", ttl_seconds=ttl.total_seconds())
    return now + ttl


def _payment_amount(event: Event, participants: int) -> Decimal:
    if event.is_free:
        return Decimal("0.00")
    return (Decimal(event.price) * participants).quantize(qr_payment.CENT)


def _status_name(payment: PendingPayment) -> str:
    return PendingPaymentStatus(payment.status).value


async def get_payment(db: AsyncSession, pending_payment_id: int) -> PendingPayment:
    result = await db.execute(
        select(PendingPayment)
        .where(PendingPayment.id == pending_payment_id)
        .execution_options(populate_existing=True)
    )
    payment = result.scalar_one_or_none()
    if not payment:
        raise NotFoundError(RESOURCE, pending_payment_id)
    return payment


async def _claim_payment(db: AsyncSession, pending_payment_id: int) -> PendingPayment:
    """Claim the payment's event, then re-read the payment under the claim."""
    payment = await get_payment(db, pending_payment_id)
    await lock_event(db, payment.event_id)
    return await get_payment(db, pending_payment_id)


async def list_payments(
    db: AsyncSession,
    event_id: int,
    status: Optional[PendingPaymentStatus] = None,
) -> list[PendingPayment]:
    query = select(PendingPayment).where(PendingPayment.event_id == event_id)
    if status is not None:
        query = query.where(PendingPayment.status == status)
    result = await db.execute(query.order_by(PendingPayment.id.asc()))
    return list(result.scalars().all())


def _group_keys(identity: dict, friends_data: Optional[list]) -> set:
    """Guest (email, name) pairs a request would occupy: a guest leader plus friends."""
    keys = {guest_key(identity["guest_name"], identity["guest_email"])}
    keys.update(guest_key(friend["name"], friend.get("email")) for friend in friends_data or [])
    keys.discard(None)
    return keys


def _overlaps(row, user_id: Optional[int], keys: set) -> bool:
    if user_id is not None and row.user_id == user_id:
        return True
    return bool(keys & _group_keys(identity_of(row), row.friends_data))


async def duplicate_reason(
    db: AsyncSession,
    event_id: int,
    identity: dict,
    friends_data: Optional[list] = None,
    include_queue: bool = True,
) -> Optional[str]:
    """
    Why a request for `identity` and its friends may not go ahead, or None.

    Users are matched on user id, guests and friends on (email, name)
    against registrations, open pending payments (leaders and the friends
    they carry) and active waiting list entries.
    """
    user_id = identity["user_id"]
    keys = _group_keys(identity, friends_data)

    clauses = [Registration.user_id == user_id] if user_id is not None else []
    clauses += [and_(Registration.guest_email == email, Registration.guest_name == name) for email, name in keys]
    if clauses:
        registered = await db.execute(
            select(Registration.id).where(Registration.event_id == event_id, or_(*clauses)).limit(1)
        )
        if registered.scalar_one_or_none() is not None:
            return "already_registered"

    open_payments = await db.execute(
        select(PendingPayment).where(
            PendingPayment.event_id == event_id,
            PendingPayment.status.in_(OPEN_PAYMENT_STATUSES),
        )
    )
    if any(_overlaps(payment, user_id, keys) for payment in open_payments.scalars()):
        return "payment_pending"

    if include_queue:
        queued = await db.execute(
            select(WaitingListEntry).where(
                WaitingListEntry.event_id == event_id,
                WaitingListEntry.promoted_at.is_(None),
            )
        )
        if any(_overlaps(entry, user_id, keys) for entry in queued.scalars()):
            return "already_waitlisted"
    return None


async def find_duplicate(
    db: AsyncSession,
    event_id: int,
    requester: Requester,
    friends: Optional[list] = None,
) -> Optional[str]:
    """Why the requester (or one of their friends) may not register again, or None."""
    return await duplicate_reason(db, event_id, identity_fields(requester), friends)


@retry_on_conflict
async def request_registration(
    db: AsyncSession,
    event_id: int,
    requester: Requester,
    friends: Optional[list] = None,
    payment_method: PaymentMethod = PaymentMethod.QR_CODE,
    ttl: Optional[timedelta] = None,
    dietary_requirements: Optional[str] = None,
    special_requests: Optional[str] = None,
) -> RegistrationOutcome:
    """
    Entry point for a user or guest asking to attend an event.

    Duplicates and full events without a waiting list are reported as
    outcomes, not errors.
    """
    friends_data = normalize_friends(friends, settings.MAX_GROUP_SIZE, leader=requester)
    event = await lock_event(db, event_id)
    participants = 1 + len(friends_data)

    reason = await find_duplicate(db, event_id, requester, friends_data)
    if reason:
        logger.info("registration_duplicate", requester=requester.label, reason=reason)
        record_registration_outcome(DUPLICATE)
        return RegistrationOutcome(outcome=DUPLICATE, reason=reason)

    if not event.allow_waiting_list and not await capacity_service.can_admit(db, event_id, participants):
        logger.info("registration_event_full", requester=requester.label, participants=participants)
        record_registration_outcome(FULL)
        return RegistrationOutcome(outcome=FULL, reason="event_full")

    result = await create_pending_payment(
        db,
        event_id,
        requester,
        friends=friends_data,
        payment_method=payment_method,
        ttl=ttl,
        dietary_requirements=dietary_requirements,
        special_requests=special_requests,
    )

    if isinstance(result, WaitingListEntry):
        outcome = RegistrationOutcome(outcome=WAITLISTED, waiting_list_entry=result)
    elif result.status == PendingPaymentStatus.PROCESSED:
        registrations = await registration_service.registrations_for_payment(db, result.id)
        outcome = RegistrationOutcome(outcome=REGISTERED, pending_payment=result, registrations=registrations)
    else:
        outcome = RegistrationOutcome(outcome=PENDING_PAYMENT, pending_payment=result)

    record_registration_outcome(outcome.outcome)
    logger.info("registration_requested", requester=requester.label, outcome=outcome.outcome)
    return outcome


@retry_on_conflict
async def create_pending_payment(
    db: AsyncSession,
    event_id: int,
    requester: Requester,
    friends: Optional[list] = None,
    payment_method: PaymentMethod = PaymentMethod.QR_CODE,
    ttl: Optional[timedelta] = None,
    dietary_requirements: Optional[str] = None,
    special_requests: Optional[str] = None,
    actor: Optional[str] = None,
) -> Union[PendingPayment, WaitingListEntry]:
    """
    Admit a request if every participant fits, otherwise queue it.

    Raises CapacityExceededError only when the event is full and has its
    waiting list turned off.
    """
    friends_data = normalize_friends(friends, settings.MAX_GROUP_SIZE, leader=requester)
    event = await lock_event(db, event_id)
    participants = 1 + len(friends_data)

    if not await capacity_service.can_admit(db, event_id, participants):
        if not event.allow_waiting_list:
            available = await capacity_service.admission_spots(db, event_id)
            raise CapacityExceededError(event_id, participants, available)
        return await waiting_list_service.enqueue(
            db,
            event_id,
            requester,
            friends=friends_data,
            payment_method=payment_method,
            dietary_requirements=dietary_requirements,
            special_requests=special_requests,
            actor=actor,
        )

    return await admit(
        db,
        event,
        identity_fields(requester),
        friends_data,
        payment_method=payment_method,
        ttl=ttl,
        dietary_requirements=dietary_requirements,
        special_requests=special_requests,
        actor=actor,
    )


async def _flush_new_payment(db: AsyncSession, payment: PendingPayment) -> None:
    try:
        await db.flush()
    except IntegrityError as exc:
        # Only the variable symbol can collide here; retry draws a new one
        raise ConcurrencyConflictError(
            f"Variable symbol {payment.variable_symbol} already taken", event_id=payment.event_id
        ) from exc


async def admit(
    db: AsyncSession,
    event: Event,
    identity: dict,
    friends_data: list[dict],
    payment_method: PaymentMethod = PaymentMethod.QR_CODE,
    ttl: Optional[timedelta] = None,
    dietary_requirements: Optional[str] = None,
    special_requests: Optional[str] = None,
    promoted_from: Optional[WaitingListEntry] = None,
    actor: Optional[str] = None,
    notify_payer: bool = True,
) -> PendingPayment:
    """
    Create the pending payment for an admitted request. The caller holds
    the event claim and has already checked capacity.
    """
    now = utcnow()
    participants = 1 + len(friends_data)
    amount = _payment_amount(event, participants)
    symbol = await qr_payment.generate_variable_symbol(db)

    account = None
    qr_code_data = None
    if not event.is_free:
        account = await qr_payment.resolve_bank_account(db, event)
        if account and account.qr_code_enabled and payment_method in (PaymentMethod.QR_CODE, PaymentMethod.BANK_TRANSFER):
            qr_code_data = qr_payment.build_payment_string(
                account.iban,
                amount,
                event.currency,
                symbol,
                qr_payment.describe_payment(event, participants),
                swift=account.swift,
            )

    payment = PendingPayment(
        event_id=event.id,
        **identity,
        status=PendingPaymentStatus.AWAITING_PAYMENT,
        registration_type=RegistrationType.GROUP if friends_data else RegistrationType.INDIVIDUAL,
        total_participants=participants,
        friends_data=friends_data,
        dietary_requirements=dietary_requirements,
        special_requests=special_requests,
        amount=amount,
        currency=event.currency,
        payment_method=payment_method,
        bank_account_id=account.id if account else None,
        variable_symbol=symbol,
        qr_code_data=qr_code_data,
        expires_at=_resolve_expiry(now, ttl),
        promoted_from_waiting_list=promoted_from is not None,
        waiting_list_position=promoted_from.position if promoted_from else None,
        created_at=now,
    )
    db.add(payment)
    await _flush_new_payment(db, payment)

    await audit_service.record(
        db,
        actor,
        "pending_payment.created",
        RESOURCE,
        payment.id,
        event_id=event.id,
        participants=participants,
        amount=amount,
        variable_symbol=symbol,
        promoted=promoted_from is not None,
    )
    record_payment_transition(PendingPaymentStatus.AWAITING_PAYMENT.value)
    logger.info(
        "pending_payment_created",
        pending_payment_id=payment.id,
        participants=participants,
        amount=str(amount),
        variable_symbol=symbol,
    )

    if event.is_free:
        await _mark_received(db, payment, reported_amount=None, verified_by=None, actor=actor)
        await _process(db, payment, actor=actor)
    elif notify_payer:
        await notification_service.notify(
            db,
            NotificationKind.PAYMENT_CONFIRMATION_REQUESTED,
            payment,
            **payment_instructions(payment),
        )
    return payment


def payment_instructions(payment: PendingPayment) -> dict:
    return {
        "pending_payment_id": payment.id,
        "amount": qr_payment.format_amount(payment.amount),
        "currency": payment.currency,
        "variable_symbol": payment.variable_symbol,
        "qr_code_data": payment.qr_code_data,
        "expires_at": as_utc(payment.expires_at).isoformat(),
    }


def _check_amount(payment: PendingPayment, reported_amount: Optional[Decimal]) -> None:
    if reported_amount is None:
        return
    expected = Decimal(payment.amount)
    if abs(Decimal(reported_amount) - expected) > settings.PAYMENT_AMOUNT_TOLERANCE:
        raise AmountMismatchError(payment.id, expected, Decimal(reported_amount))


async def _mark_received(
    db: AsyncSession,
    payment: PendingPayment,
    reported_amount: Optional[Decimal],
    verified_by: Optional[int],
    actor: Optional[str],
    forced: bool = False,
) -> None:
    now = utcnow()
    payment.status = PendingPaymentStatus.PAYMENT_RECEIVED
    payment.paid_at = now
    payment.verified_at = now
    payment.verified_by = verified_by
    payment.reported_amount = reported_amount
    await db.flush()
    await audit_service.record(
        db,
        actor or audit_service.user_actor(verified_by),
        "pending_payment.received",
        RESOURCE,
        payment.id,
        event_id=payment.event_id,
        reported_amount=reported_amount,
        forced=forced,
    )
    record_payment_transition(PendingPaymentStatus.PAYMENT_RECEIVED.value)


async def _process(db: AsyncSession, payment: PendingPayment, actor: Optional[str]) -> list[Registration]:
    registrations = await registration_service.finalize(db, payment, actor=actor)
    payment.status = PendingPaymentStatus.PROCESSED
    payment.processed_at = utcnow()
    await db.flush()
    await audit_service.record(
        db,
        actor,
        "pending_payment.processed",
        RESOURCE,
        payment.id,
        event_id=payment.event_id,
        registration_ids=[r.id for r in registrations],
    )
    record_payment_transition(PendingPaymentStatus.PROCESSED.value)
    await notification_service.notify(
        db,
        NotificationKind.PAYMENT_VERIFIED,
        payment,
        pending_payment_id=payment.id,
        registration_ids=[r.id for r in registrations],
    )
    logger.info("pending_payment_processed", pending_payment_id=payment.id, registrations=len(registrations))
    return registrations


@retry_on_conflict
async def record_payment(
    db: AsyncSession,
    pending_payment_id: int,
    reported_amount: Optional[Decimal] = None,
    verified_by: Optional[int] = None,
    force: bool = False,
    actor: Optional[str] = None,
) -> PendingPayment:
    """
    AWAITING_PAYMENT -> PAYMENT_RECEIVED.

    The payment starts holding capacity here, so the spot is checked first
    unless `force` is set.
    """
    payment = await _claim_payment(db, pending_payment_id)
    if payment.status != PendingPaymentStatus.AWAITING_PAYMENT:
        raise InvalidStateError(RESOURCE, payment.id, _status_name(payment), "record payment for")
    _check_amount(payment, reported_amount)

    needed = capacity_service.units_for(payment.total_participants)
    if not force and not await capacity_service.has_capacity(db, payment.event_id, needed):
        available = await capacity_service.available_spots(db, payment.event_id)
        raise CapacityExceededError(payment.event_id, needed, available)

    await _mark_received(db, payment, reported_amount, verified_by, actor, forced=force)
    logger.info("payment_recorded", pending_payment_id=payment.id, forced=force)
    return payment


@retry_on_conflict
async def process_payment(
    db: AsyncSession,
    pending_payment_id: int,
    actor: Optional[str] = None,
) -> list[Registration]:
    """PAYMENT_RECEIVED -> PROCESSED, materialising the registrations."""
    payment = await _claim_payment(db, pending_payment_id)
    if payment.status != PendingPaymentStatus.PAYMENT_RECEIVED:
        raise InvalidStateError(RESOURCE, payment.id, _status_name(payment), "process")
    return await _process(db, payment, actor)


@retry_on_conflict
async def verify(
    db: AsyncSession,
    pending_payment_id: int,
    verified_by: Optional[int] = None,
    reported_amount: Optional[Decimal] = None,
    force: bool = False,
) -> PendingPayment:
    """Record and process a payment in one transaction."""
    actor = audit_service.user_actor(verified_by)
    payment = await record_payment(
        db,
        pending_payment_id,
        reported_amount=reported_amount,
        verified_by=verified_by,
        force=force,
        actor=actor,
    )
    await process_payment(db, payment.id, actor=actor)
    return payment


@retry_on_conflict
async def reject(
    db: AsyncSession,
    pending_payment_id: int,
    reason: str,
    actor: Optional[str] = None,
) -> PendingPayment:
    payment = await _claim_payment(db, pending_payment_id)
    if payment.status not in OPEN_PAYMENT_STATUSES:
        raise InvalidStateError(RESOURCE, payment.id, _status_name(payment), "reject")

    previous = _status_name(payment)
    payment.status = PendingPaymentStatus.CANCELLED
    payment.cancelled_at = utcnow()
    payment.rejection_reason = reason
    await db.flush()

    await audit_service.record(
        db, actor, "pending_payment.rejected", RESOURCE, payment.id,
        event_id=payment.event_id, previous_status=previous, reason=reason,
    )
    record_payment_transition(PendingPaymentStatus.CANCELLED.value)
    await notification_service.notify(
        db,
        NotificationKind.PAYMENT_REJECTED,
        payment,
        pending_payment_id=payment.id,
        reason=reason,
    )
    logger.info("pending_payment_rejected", pending_payment_id=payment.id, previous_status=previous)

    # A received payment held a spot
    await waiting_list_service.recover_capacity(db, payment.event_id, actor=actor)
    return payment


@retry_on_conflict
async def expire(
    db: AsyncSession,
    pending_payment_id: int,
    now: Optional[datetime] = None,
    actor: Optional[str] = None,
) -> PendingPayment:
    """
    AWAITING_PAYMENT -> EXPIRED once the deadline has passed.
    Expiring an already expired payment is a no-op.
    """
    now = now or utcnow()
    payment = await get_payment(db, pending_payment_id)
    if payment.status == PendingPaymentStatus.EXPIRED:
        return payment

    payment = await _claim_payment(db, pending_payment_id)
    if payment.status == PendingPaymentStatus.EXPIRED:
        return payment
    if payment.status != PendingPaymentStatus.AWAITING_PAYMENT:
        raise InvalidStateError(RESOURCE, payment.id, _status_name(payment), "expire")
    if not now > as_utc(payment.expires_at):
        raise InvalidStateError(RESOURCE, payment.id, "NOT_DUE", "expire")

    payment.status = PendingPaymentStatus.EXPIRED
    await db.flush()
    await audit_service.record(
        db, actor, "pending_payment.expired", RESOURCE, payment.id,
        event_id=payment.event_id, expires_at=as_utc(payment.expires_at).isoformat(),
    )
    record_payment_transition(PendingPaymentStatus.EXPIRED.value)
    logger.info("pending_payment_expired", pending_payment_id=payment.id)

    await waiting_list_service.recover_capacity(db, payment.event_id, actor=actor)
    return payment


@retry_on_conflict
async def expire_overdue(db: AsyncSession, now: Optional[datetime] = None, actor: Optional[str] = None) -> list[int]:
    """Expire every awaiting payment whose deadline has passed."""
    now = now or utcnow()
    result = await db.execute(
        select(PendingPayment.id)
        .where(
            PendingPayment.status == PendingPaymentStatus.AWAITING_PAYMENT,
            PendingPayment.expires_at < now,
        )
        .order_by(PendingPayment.id.asc())
    )
    expired = []
    for pending_payment_id in result.scalars().all():
        payment = await expire(db, pending_payment_id, now=now, actor=actor)
        if payment.status == PendingPaymentStatus.EXPIRED:
            expired.append(payment.id)
    logger.info("expiry_sweep_completed", expired=len(expired))
    return expired
