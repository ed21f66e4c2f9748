"""
Registrations: the durable participation records.

Registrations are created in two ways:
  - finalize(): a verified pending payment becomes one leader row plus one
    member row per friend, all CONFIRMED
  - admin_register() / force_register(): an organizer adds someone directly,
    with or without a capacity check

Group members follow their leader through cancel, confirm and reject.
Any transition that may free a spot hands the event to the waiting list
for promotion.
"""

import copy
from typing import Optional

from sqlalchemy import and_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from gameone.core.clock import utcnow
from gameone.core.config import get_settings
from gameone.core.exceptions import (
    CapacityExceededError,
    DuplicateRegistrationError,
    InvalidStateError,
    NotFoundError,
)
from gameone.core.logging import get_logger
from gameone.core.metrics import record_registration_transition
from gameone.models.enums import (
    PendingPaymentStatus,
    RegistrationSource,
    RegistrationStatus,
    RegistrationType,
)
from gameone.models.pending_payment import PendingPayment
from gameone.models.registration import Registration
from gameone.schemas.registration import Requester, identity_fields, identity_of, normalize_friends
from gameone.services import audit_service, capacity_service, payment_service, waiting_list_service
from gameone.services.locking import lock_event, retry_on_conflict

logger = get_logger(__name__)
settings = get_settings()

RESOURCE = "Registration"

ACTIVE_STATUSES = (RegistrationStatus.PENDING, RegistrationStatus.CONFIRMED)


def _status_name(registration: Registration) -> str:
    return RegistrationStatus(registration.status).value


async def get_registration(db: AsyncSession, registration_id: int) -> Registration:
    result = await db.execute(
        select(Registration)
        .where(Registration.id == registration_id)
        .execution_options(populate_existing=True)
    )
    registration = result.scalar_one_or_none()
    if not registration:
        raise NotFoundError(RESOURCE, registration_id)
    return registration


async def _claim_registration(db: AsyncSession, registration_id: int) -> Registration:
    registration = await get_registration(db, registration_id)
    await lock_event(db, registration.event_id)
    return await get_registration(db, registration_id)


async def group_members(db: AsyncSession, leader_id: int) -> list[Registration]:
    result = await db.execute(
        select(Registration)
        .where(Registration.group_leader_id == leader_id)
        .order_by(Registration.friend_position.asc())
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def registrations_for_payment(db: AsyncSession, pending_payment_id: int) -> list[Registration]:
    result = await db.execute(
        select(Registration)
        .where(Registration.pending_payment_id == pending_payment_id)
        .order_by(Registration.id.asc())
    )
    return list(result.scalars().all())


async def list_event_registrations(
    db: AsyncSession,
    event_id: int,
    status: Optional[RegistrationStatus] = None,
) -> list[Registration]:
    query = select(Registration).where(Registration.event_id == event_id)
    if status is not None:
        query = query.where(Registration.status == status)
    result = await db.execute(query.order_by(Registration.id.asc()))
    return list(result.scalars().all())


async def list_user_registrations(db: AsyncSession, user_id: int) -> list[Registration]:
    result = await db.execute(
        select(Registration)
        .where(Registration.user_id == user_id)
        .order_by(Registration.created_at.desc())
    )
    return list(result.scalars().all())


async def _ensure_not_registered(db: AsyncSession, event_id: int, identity: dict, friends_data: list[dict]) -> None:
    if identity["user_id"] is not None:
        clause = Registration.user_id == identity["user_id"]
    else:
        clause = and_(
            Registration.guest_email == identity["guest_email"],
            Registration.guest_name == identity["guest_name"],
        )
    clauses = [clause]
    for friend in friends_data:
        if friend.get("email"):
            clauses.append(
                and_(Registration.guest_email == friend["email"], Registration.guest_name == friend["name"])
            )

    for candidate in clauses:
        result = await db.execute(
            select(Registration.id).where(Registration.event_id == event_id, candidate).limit(1)
        )
        existing = result.scalar_one_or_none()
        if existing is not None:
            raise DuplicateRegistrationError(
                f"A participant is already registered for event {event_id}",
                event_id=event_id,
                registration_id=existing,
            )


async def _flush_rows(db: AsyncSession, event_id: int) -> None:
    try:
        await db.flush()
    except IntegrityError as exc:
        raise DuplicateRegistrationError(
            f"Registration already exists for event {event_id}", event_id=event_id
        ) from exc


async def _materialise(
    db: AsyncSession,
    event_id: int,
    identity: dict,
    friends_data: list[dict],
    status: RegistrationStatus,
    registration_type: RegistrationType,
    source: RegistrationSource,
    requires_payment: bool,
    dietary_requirements: Optional[str] = None,
    special_requests: Optional[str] = None,
    pending_payment: Optional[PendingPayment] = None,
    actor: Optional[str] = None,
    action: str = "registration.created",
    **audit_details,
) -> list[Registration]:
    """Insert the leader row and one member row per friend."""
    now = utcnow()
    confirmed_at = now if status == RegistrationStatus.CONFIRMED else None
    group_size = 1 + len(friends_data)
    common = dict(
        event_id=event_id,
        status=status,
        registration_type=registration_type,
        source=source,
        group_size=group_size,
        requires_payment=requires_payment,
        pending_payment_id=pending_payment.id if pending_payment else None,
        promoted_from_waiting_list=bool(pending_payment and pending_payment.promoted_from_waiting_list),
        waiting_list_position=pending_payment.waiting_list_position if pending_payment else None,
        confirmed_at=confirmed_at,
    )

    leader = Registration(
        **common,
        **identity,
        is_group_leader=True,
        friends_data=copy.deepcopy(friends_data),
        dietary_requirements=dietary_requirements,
        special_requests=special_requests,
    )
    db.add(leader)
    await _flush_rows(db, event_id)

    members = []
    for position, friend in enumerate(friends_data, start=1):
        members.append(
            Registration(
                **common,
                user_id=None,
                is_guest_request=True,
                guest_name=friend["name"],
                guest_email=friend.get("email"),
                guest_phone=friend.get("phone"),
                is_group_leader=False,
                friend_position=position,
                group_leader_id=leader.id,
                friends_data=[],
                dietary_requirements=friend.get("dietary_requirements"),
                special_requests=friend.get("special_requests"),
            )
        )
    if members:
        db.add_all(members)
        await _flush_rows(db, event_id)

    rows = [leader, *members]
    for row in rows:
        await audit_service.record(
            db,
            actor,
            action,
            RESOURCE,
            row.id,
            event_id=event_id,
            status=status,
            source=source,
            group_leader_id=row.group_leader_id,
            pending_payment_id=row.pending_payment_id,
            **audit_details,
        )
        record_registration_transition(status.value)
    return rows


async def finalize(
    db: AsyncSession,
    pending_payment: PendingPayment,
    actor: Optional[str] = None,
) -> list[Registration]:
    """
    Materialise a PAYMENT_RECEIVED pending payment into CONFIRMED
    registrations. Leaves the payment status to the caller.
    """
    if pending_payment.status != PendingPaymentStatus.PAYMENT_RECEIVED:
        raise InvalidStateError(
            "PendingPayment",
            pending_payment.id,
            PendingPaymentStatus(pending_payment.status).value,
            "finalize",
        )

    identity = identity_of(pending_payment)
    friends_data = list(pending_payment.friends_data or [])
    await _ensure_not_registered(db, pending_payment.event_id, identity, friends_data)

    source = (
        RegistrationSource.WAITING_LIST_PROMOTION
        if pending_payment.promoted_from_waiting_list
        else RegistrationSource.PENDING_PAYMENT_CONFIRMED
    )
    rows = await _materialise(
        db,
        pending_payment.event_id,
        identity,
        friends_data,
        status=RegistrationStatus.CONFIRMED,
        registration_type=RegistrationType(pending_payment.registration_type),
        source=source,
        requires_payment=pending_payment.amount > 0,
        dietary_requirements=pending_payment.dietary_requirements,
        special_requests=pending_payment.special_requests,
        pending_payment=pending_payment,
        actor=actor,
    )
    logger.info(
        "registrations_finalized",
        pending_payment_id=pending_payment.id,
        leader_id=rows[0].id,
        group_size=len(rows),
    )
    return rows


async def _transition_group(
    db: AsyncSession,
    leader: Registration,
    from_statuses: tuple,
    to_status: RegistrationStatus,
    action: str,
    actor: Optional[str],
    audit_details: Optional[dict] = None,
    **fields,
) -> list[Registration]:
    rows = [leader]
    if leader.is_group_leader:
        rows += [m for m in await group_members(db, leader.id) if m.status in from_statuses]

    for row in rows:
        previous = _status_name(row)
        row.status = to_status
        for name, value in fields.items():
            setattr(row, name, value)
        await audit_service.record(
            db, actor, action, RESOURCE, row.id,
            event_id=row.event_id, previous_status=previous, group_leader_id=row.group_leader_id,
            **(audit_details or {}),
        )
        record_registration_transition(to_status.value)
    await db.flush()
    return rows


@retry_on_conflict
async def cancel(db: AsyncSession, registration_id: int, actor: Optional[str] = None) -> Registration:
    """Cancel a registration, its group members with it, and refill the spot."""
    registration = await _claim_registration(db, registration_id)
    if registration.status not in ACTIVE_STATUSES:
        raise InvalidStateError(RESOURCE, registration_id, _status_name(registration), "cancel")

    rows = await _transition_group(
        db,
        registration,
        ACTIVE_STATUSES,
        RegistrationStatus.CANCELLED,
        "registration.cancelled",
        actor,
        cancelled_at=utcnow(),
    )
    logger.info("registration_cancelled", registration_id=registration_id, rows=len(rows))

    await waiting_list_service.recover_capacity(db, registration.event_id, actor=actor)
    return registration


@retry_on_conflict
async def confirm(
    db: AsyncSession,
    registration_id: int,
    actor: Optional[str] = None,
    force: bool = False,
) -> Registration:
    """PENDING -> CONFIRMED, checking the spot unless forced."""
    registration = await _claim_registration(db, registration_id)
    if registration.status != RegistrationStatus.PENDING:
        raise InvalidStateError(RESOURCE, registration_id, _status_name(registration), "confirm")

    needed = registration.group_size if registration.is_group_leader else 1
    if not force and not await capacity_service.can_admit(db, registration.event_id, needed):
        available = await capacity_service.admission_spots(db, registration.event_id)
        raise CapacityExceededError(registration.event_id, needed, available)

    await _transition_group(
        db,
        registration,
        (RegistrationStatus.PENDING,),
        RegistrationStatus.CONFIRMED,
        "registration.confirmed",
        actor,
        audit_details={"forced": force},
        confirmed_at=utcnow(),
    )
    logger.info("registration_confirmed", registration_id=registration_id, forced=force)
    return registration


@retry_on_conflict
async def reject(
    db: AsyncSession,
    registration_id: int,
    reason: str,
    actor: Optional[str] = None,
) -> Registration:
    registration = await _claim_registration(db, registration_id)
    if registration.status != RegistrationStatus.PENDING:
        raise InvalidStateError(RESOURCE, registration_id, _status_name(registration), "reject")

    await _transition_group(
        db,
        registration,
        (RegistrationStatus.PENDING,),
        RegistrationStatus.REJECTED,
        "registration.rejected",
        actor,
        rejection_reason=reason,
    )
    logger.info("registration_rejected", registration_id=registration_id)

    await waiting_list_service.recover_capacity(db, registration.event_id, actor=actor)
    return registration


@retry_on_conflict
async def mark_attendance(
    db: AsyncSession,
    registration_id: int,
    attended: bool,
    actor: Optional[str] = None,
) -> Registration:
    """CONFIRMED -> ATTENDED or NO_SHOW. Applies to this row only."""
    registration = await _claim_registration(db, registration_id)
    if registration.status != RegistrationStatus.CONFIRMED:
        raise InvalidStateError(RESOURCE, registration_id, _status_name(registration), "mark attendance for")

    registration.status = RegistrationStatus.ATTENDED if attended else RegistrationStatus.NO_SHOW
    registration.attended_at = utcnow() if attended else None
    await db.flush()

    await audit_service.record(
        db, actor, "registration.attendance", RESOURCE, registration.id,
        event_id=registration.event_id, attended=attended,
    )
    record_registration_transition(_status_name(registration))
    logger.info("registration_attendance", registration_id=registration_id, attended=attended)
    return registration


async def _register_directly(
    db: AsyncSession,
    event_id: int,
    requester: Requester,
    friends: Optional[list],
    actor: Optional[str],
    confirm_now: bool,
    force: bool,
) -> list[Registration]:
    friends_data = normalize_friends(friends, settings.MAX_GROUP_SIZE, leader=requester)
    await lock_event(db, event_id)
    participants = 1 + len(friends_data)
    identity = identity_fields(requester)

    if confirm_now and not force and not await capacity_service.can_admit(db, event_id, participants):
        available = await capacity_service.admission_spots(db, event_id)
        raise CapacityExceededError(event_id, participants, available)

    await _ensure_not_registered(db, event_id, identity, friends_data)
    withdrawn = await waiting_list_service.withdraw_identity(db, event_id, identity, actor=actor)
    reason = await payment_service.duplicate_reason(db, event_id, identity, friends_data)
    if reason:
        raise DuplicateRegistrationError(
            f"{requester.label} cannot be registered for event {event_id}: {reason}",
            event_id=event_id,
            reason=reason,
        )
    rows = await _materialise(
        db,
        event_id,
        identity,
        friends_data,
        status=RegistrationStatus.CONFIRMED if confirm_now else RegistrationStatus.PENDING,
        registration_type=RegistrationType.ADMIN_CREATED,
        source=RegistrationSource.ADMIN_CREATED,
        requires_payment=False,
        actor=actor,
        action="registration.admin_created",
        forced=force,
    )
    logger.info(
        "registration_admin_created",
        requester=requester.label,
        participants=participants,
        withdrawn_entries=withdrawn,
        forced=force,
    )
    return rows


@retry_on_conflict
async def admin_register(
    db: AsyncSession,
    event_id: int,
    requester: Requester,
    friends: Optional[list] = None,
    actor: Optional[str] = None,
    confirm_now: bool = True,
) -> list[Registration]:
    """Organizer-created registration, subject to capacity when confirmed."""
    return await _register_directly(db, event_id, requester, friends, actor, confirm_now, force=False)


@retry_on_conflict
async def force_register(
    db: AsyncSession,
    event_id: int,
    requester: Requester,
    friends: Optional[list] = None,
    actor: Optional[str] = None,
) -> list[Registration]:
    """Organizer-created CONFIRMED registration that may overbook the event."""
    return await _register_directly(db, event_id, requester, friends, actor, confirm_now=True, force=True)
