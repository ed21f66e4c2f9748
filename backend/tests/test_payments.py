"""
Tests for the pending payment lifecycle.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from gameone.core.clock import as_utc, utcnow
from gameone.core.exceptions import (
    AmountMismatchError,
    CapacityExceededError,
    InvalidStateError,
    ValidationError,
)
from gameone.models.enums import PendingPaymentStatus, RegistrationSource, RegistrationStatus
from gameone.schemas.registration import FriendMember, GuestContact, Requester
from gameone.services import audit_service, capacity_service, payment_service, registration_service


async def _request(db, event_id, user_id, friends=None, **kwargs):
    outcome = await payment_service.request_registration(
        db, event_id, Requester(user_id=user_id), friends=friends, **kwargs
    )
    await db.commit()
    return outcome


@pytest.mark.asyncio
async def test_individual_request_creates_pending_payment(db_session, test_event, test_user, outbox_kinds):
    """A request that fits becomes a payment awaiting transfer."""
    outcome = await _request(db_session, test_event.id, test_user.id)

    assert outcome.outcome == payment_service.PENDING_PAYMENT
    payment = outcome.pending_payment
    assert payment.status == PendingPaymentStatus.AWAITING_PAYMENT
    assert payment.total_participants == 1
    assert payment.amount == Decimal("25.00")
    assert payment.currency == "EUR"
    assert payment.promoted_from_waiting_list is False
    assert payment.qr_code_data.startswith("SPD*1.0*ACC:SK3112000000198742637541+TATRSKBX*AM:25.00*CC:EUR")
    assert f"X-VS:{payment.variable_symbol}" in payment.qr_code_data
    assert as_utc(payment.expires_at) > as_utc(payment.created_at)

    assert await outbox_kinds(db_session) == ["payment-confirmation-requested"]


@pytest.mark.asyncio
async def test_group_amount_scales_with_participants(db_session, test_event, test_user):
    outcome = await _request(
        db_session, test_event.id, test_user.id, friends=[FriendMember(name="Eva"), FriendMember(name="Jan")]
    )

    payment = outcome.pending_payment
    assert payment.total_participants == 3
    assert len(payment.friends_data) == 2
    assert payment.amount == Decimal("75.00")
    assert "MSG:Summer Cup - 3 participants" in payment.qr_code_data


@pytest.mark.asyncio
async def test_payment_deadline_from_ttl(db_session, test_event, test_user):
    before = utcnow()
    outcome = await _request(db_session, test_event.id, test_user.id, ttl=timedelta(hours=2))

    expires_at = as_utc(outcome.pending_payment.expires_at)
    assert before + timedelta(hours=2) <= expires_at <= utcnow() + timedelta(hours=2)


@pytest.mark.asyncio
async def test_non_positive_ttl_rejected(db_session, test_event, test_user):
    event_id, user_id = test_event.id, test_user.id
    with pytest.raises(ValidationError):
        await payment_service.request_registration(
            db_session, event_id, Requester(user_id=user_id), ttl=timedelta(0)
        )
    await db_session.rollback()


@pytest.mark.asyncio
async def test_group_larger_than_limit_rejected(db_session, test_event, test_user):
    friends = [FriendMember(name=f"Friend {i}") for i in range(10)]
    with pytest.raises(ValidationError):
        await payment_service.request_registration(
            db_session, test_event.id, Requester(user_id=test_user.id), friends=friends
        )


@pytest.mark.asyncio
async def test_verify_group_creates_leader_and_members(db_session, test_event, test_user, admin_user, outbox_kinds):
    """Verifying a payment for three people yields one leader and two members."""
    outcome = await _request(
        db_session,
        test_event.id,
        test_user.id,
        friends=[FriendMember(name="Eva", email="eva@example.com"), FriendMember(name="Jan")],
    )
    payment = await payment_service.verify(db_session, outcome.pending_payment.id, verified_by=admin_user.id)
    await db_session.commit()

    assert payment.status == PendingPaymentStatus.PROCESSED
    assert payment.verified_by == admin_user.id
    assert payment.paid_at is not None
    assert payment.processed_at is not None

    rows = await registration_service.registrations_for_payment(db_session, payment.id)
    assert len(rows) == 3
    leader, first, second = rows
    assert leader.is_group_leader is True
    assert leader.user_id == test_user.id
    assert leader.group_size == 3
    assert leader.status == RegistrationStatus.CONFIRMED
    assert leader.source == RegistrationSource.PENDING_PAYMENT_CONFIRMED
    assert [f["name"] for f in leader.friends_data] == ["Eva", "Jan"]

    assert (first.guest_name, first.guest_email, first.friend_position) == ("Eva", "eva@example.com", 1)
    assert (second.guest_name, second.friend_position) == ("Jan", 2)
    for member in (first, second):
        assert member.is_group_leader is False
        assert member.group_leader_id == leader.id
        assert member.status == RegistrationStatus.CONFIRMED

    assert await outbox_kinds(db_session) == ["payment-confirmation-requested", "payment-verified"]


@pytest.mark.asyncio
async def test_verify_writes_audit_trail(db_session, test_event, test_user, admin_user):
    outcome = await _request(db_session, test_event.id, test_user.id)
    payment = await payment_service.verify(db_session, outcome.pending_payment.id, verified_by=admin_user.id)
    await db_session.commit()

    history = await audit_service.history(db_session, "PendingPayment", payment.id)
    assert [entry.action for entry in history] == [
        "pending_payment.created",
        "pending_payment.received",
        "pending_payment.processed",
    ]
    assert history[1].actor == f"user:{admin_user.id}"


@pytest.mark.asyncio
async def test_amount_mismatch_leaves_payment_untouched(db_session, test_event, test_user, admin_user):
    outcome = await _request(db_session, test_event.id, test_user.id)
    payment_id, admin_id = outcome.pending_payment.id, admin_user.id

    with pytest.raises(AmountMismatchError):
        await payment_service.verify(
            db_session, payment_id, verified_by=admin_id, reported_amount=Decimal("20.00")
        )
    await db_session.rollback()

    payment = await payment_service.get_payment(db_session, payment_id)
    assert payment.status == PendingPaymentStatus.AWAITING_PAYMENT
    assert await registration_service.registrations_for_payment(db_session, payment_id) == []


@pytest.mark.asyncio
async def test_amount_within_tolerance_accepted(db_session, test_event, test_user, admin_user):
    outcome = await _request(db_session, test_event.id, test_user.id)

    payment = await payment_service.verify(
        db_session, outcome.pending_payment.id, verified_by=admin_user.id, reported_amount=Decimal("25.01")
    )
    await db_session.commit()

    assert payment.status == PendingPaymentStatus.PROCESSED
    assert payment.reported_amount == Decimal("25.01")


@pytest.mark.asyncio
async def test_verify_twice_is_invalid(db_session, test_event, test_user, admin_user):
    outcome = await _request(db_session, test_event.id, test_user.id)
    payment_id, admin_id = outcome.pending_payment.id, admin_user.id
    await payment_service.verify(db_session, payment_id, verified_by=admin_id)
    await db_session.commit()

    with pytest.raises(InvalidStateError):
        await payment_service.verify(db_session, payment_id, verified_by=admin_id)
    await db_session.rollback()


@pytest.mark.asyncio
async def test_verify_rechecks_capacity_unless_forced(db_session, make_event, test_user, admin_user):
    event = await make_event(capacity=1)
    event_id, user_id, admin_id = event.id, test_user.id, admin_user.id
    outcome = await _request(db_session, event_id, user_id)
    payment_id = outcome.pending_payment.id

    await registration_service.force_register(
        db_session, event_id, Requester(guest=GuestContact(name="Walk In", email="walkin@example.com"))
    )
    await db_session.commit()

    with pytest.raises(CapacityExceededError):
        await payment_service.verify(db_session, payment_id, verified_by=admin_id)
    await db_session.rollback()

    payment = await payment_service.verify(db_session, payment_id, verified_by=admin_id, force=True)
    await db_session.commit()

    assert payment.status == PendingPaymentStatus.PROCESSED
    assert await capacity_service.effective_count(db_session, event_id) == 2


@pytest.mark.asyncio
async def test_record_then_process_separately(db_session, test_event, test_user, admin_user):
    """A received payment holds its spot until it is processed."""
    outcome = await _request(db_session, test_event.id, test_user.id)
    payment_id = outcome.pending_payment.id

    payment = await payment_service.record_payment(db_session, payment_id, verified_by=admin_user.id)
    await db_session.commit()
    assert payment.status == PendingPaymentStatus.PAYMENT_RECEIVED
    assert await capacity_service.effective_count(db_session, test_event.id) == 1

    registrations = await payment_service.process_payment(db_session, payment_id)
    await db_session.commit()
    assert len(registrations) == 1
    assert await capacity_service.effective_count(db_session, test_event.id) == 1


@pytest.mark.asyncio
async def test_reject_cancels_and_notifies(db_session, test_event, test_user, outbox_kinds):
    outcome = await _request(db_session, test_event.id, test_user.id)

    payment = await payment_service.reject(db_session, outcome.pending_payment.id, "Transfer never arrived")
    await db_session.commit()

    assert payment.status == PendingPaymentStatus.CANCELLED
    assert payment.rejection_reason == "Transfer never arrived"
    assert payment.cancelled_at is not None
    assert await outbox_kinds(db_session) == ["payment-confirmation-requested", "payment-rejected"]


@pytest.mark.asyncio
async def test_reject_processed_payment_is_invalid(db_session, test_event, test_user, admin_user):
    outcome = await _request(db_session, test_event.id, test_user.id)
    payment_id = outcome.pending_payment.id
    await payment_service.verify(db_session, payment_id, verified_by=admin_user.id)
    await db_session.commit()

    with pytest.raises(InvalidStateError):
        await payment_service.reject(db_session, payment_id, "Too late")
    await db_session.rollback()


@pytest.mark.asyncio
async def test_expire_before_deadline_is_refused(db_session, test_event, make_payment):
    payment = await make_payment(test_event)
    payment_id = payment.id

    with pytest.raises(InvalidStateError) as exc_info:
        await payment_service.expire(db_session, payment_id)
    await db_session.rollback()

    assert exc_info.value.context["current_status"] == "NOT_DUE"


@pytest.mark.asyncio
async def test_expire_after_deadline_is_idempotent(db_session, test_event, make_payment):
    payment = await make_payment(test_event, expires_at=utcnow() - timedelta(minutes=5))

    expired = await payment_service.expire(db_session, payment.id)
    await db_session.commit()
    assert expired.status == PendingPaymentStatus.EXPIRED

    again = await payment_service.expire(db_session, payment.id)
    await db_session.commit()
    assert again.status == PendingPaymentStatus.EXPIRED

    history = await audit_service.history(db_session, "PendingPayment", payment.id)
    assert [entry.action for entry in history] == ["pending_payment.expired"]


@pytest.mark.asyncio
async def test_expire_received_payment_is_invalid(db_session, test_event, make_payment):
    payment = await make_payment(test_event, PendingPaymentStatus.PAYMENT_RECEIVED)
    payment_id = payment.id

    with pytest.raises(InvalidStateError):
        await payment_service.expire(db_session, payment_id)
    await db_session.rollback()


@pytest.mark.asyncio
async def test_expiry_sweep(db_session, test_event, make_payment):
    overdue = [
        await make_payment(test_event, expires_at=utcnow() - timedelta(hours=1)),
        await make_payment(test_event, expires_at=utcnow() - timedelta(minutes=1)),
    ]
    current = await make_payment(test_event, expires_at=utcnow() + timedelta(hours=1))
    current_id = current.id

    expired = await payment_service.expire_overdue(db_session)
    await db_session.commit()
    assert expired == [p.id for p in overdue]

    assert await payment_service.expire_overdue(db_session) == []
    await db_session.commit()

    payment = await payment_service.get_payment(db_session, current_id)
    assert payment.status == PendingPaymentStatus.AWAITING_PAYMENT


@pytest.mark.asyncio
async def test_free_event_registers_immediately(db_session, make_event, test_user, outbox_kinds):
    event = await make_event(price=Decimal("0"))

    outcome = await _request(db_session, event.id, test_user.id)

    assert outcome.outcome == payment_service.REGISTERED
    assert outcome.pending_payment.status == PendingPaymentStatus.PROCESSED
    assert outcome.pending_payment.amount == Decimal("0.00")
    assert outcome.pending_payment.qr_code_data is None
    assert len(outcome.registrations) == 1
    assert outcome.registrations[0].status == RegistrationStatus.CONFIRMED
    assert outcome.registrations[0].requires_payment is False
    assert await outbox_kinds(db_session) == ["payment-verified"]


@pytest.mark.asyncio
async def test_duplicate_requests_reported_as_outcome(db_session, test_event, test_user, admin_user):
    first = await _request(db_session, test_event.id, test_user.id)

    second = await _request(db_session, test_event.id, test_user.id)
    assert second.outcome == payment_service.DUPLICATE
    assert second.reason == "payment_pending"

    await payment_service.verify(db_session, first.pending_payment.id, verified_by=admin_user.id)
    await db_session.commit()

    third = await _request(db_session, test_event.id, test_user.id)
    assert third.outcome == payment_service.DUPLICATE
    assert third.reason == "already_registered"


@pytest.mark.asyncio
async def test_guest_request(db_session, test_event):
    guest = GuestContact(name="Marta", email="marta@example.com", phone="+421900000000")
    outcome = await payment_service.request_registration(db_session, test_event.id, Requester(guest=guest))
    await db_session.commit()

    payment = outcome.pending_payment
    assert payment.user_id is None
    assert payment.is_guest_request is True
    assert payment.guest_email == "marta@example.com"
    assert payment.guest_phone == "+421900000000"


@pytest.mark.asyncio
async def test_full_event_without_waiting_list(db_session, make_event, test_user):
    event = await make_event(capacity=0, allow_waiting_list=False)
    event_id, user_id = event.id, test_user.id

    outcome = await _request(db_session, event_id, user_id)
    assert outcome.outcome == payment_service.FULL

    with pytest.raises(CapacityExceededError):
        await payment_service.create_pending_payment(db_session, event_id, Requester(user_id=user_id))
    await db_session.rollback()


@pytest.mark.asyncio
async def test_list_payments_filters_by_status(db_session, test_event, make_payment):
    await make_payment(test_event)
    received = await make_payment(test_event, PendingPaymentStatus.PAYMENT_RECEIVED)

    payments = await payment_service.list_payments(
        db_session, test_event.id, PendingPaymentStatus.PAYMENT_RECEIVED
    )
    assert [p.id for p in payments] == [received.id]
    assert len(await payment_service.list_payments(db_session, test_event.id)) == 2


EVA = FriendMember(name="Eva", email="eva@example.com")


@pytest.mark.asyncio
async def test_repeated_friend_rejected(db_session, test_event, test_user):
    """Each friend becomes a guest registration, so the same friend twice can never be finalized."""
    event_id, user_id = test_event.id, test_user.id
    with pytest.raises(ValidationError):
        await payment_service.request_registration(db_session, event_id, Requester(user_id=user_id), friends=[EVA, EVA])
    await db_session.rollback()

    assert await payment_service.list_payments(db_session, event_id) == []


@pytest.mark.asyncio
async def test_friend_matching_guest_leader_rejected(db_session, test_event):
    leader = Requester(guest=GuestContact(name="Eva", email="eva@example.com"))
    with pytest.raises(ValidationError):
        await payment_service.request_registration(db_session, test_event.id, leader, friends=[EVA])
    await db_session.rollback()


@pytest.mark.asyncio
async def test_friend_already_registered_is_duplicate(db_session, test_event, test_user):
    walk_in = Requester(guest=GuestContact(name="Eva", email="eva@example.com"))
    await registration_service.admin_register(db_session, test_event.id, walk_in)
    await db_session.commit()

    outcome = await _request(db_session, test_event.id, test_user.id, friends=[EVA])

    assert outcome.outcome == payment_service.DUPLICATE
    assert outcome.reason == "already_registered"
    assert await payment_service.list_payments(db_session, test_event.id) == []


@pytest.mark.asyncio
async def test_friend_in_open_payment_is_duplicate(db_session, test_event, make_user, admin_user):
    first, second = await make_user(), await make_user()
    held = await _request(db_session, test_event.id, first.id, friends=[EVA])

    outcome = await _request(db_session, test_event.id, second.id, friends=[EVA])
    assert outcome.outcome == payment_service.DUPLICATE
    assert outcome.reason == "payment_pending"

    # The first group still finalizes
    payment = await payment_service.verify(db_session, held.pending_payment.id, verified_by=admin_user.id)
    await db_session.commit()
    assert payment.status == PendingPaymentStatus.PROCESSED
    rows = await registration_service.registrations_for_payment(db_session, payment.id)
    assert [r.guest_name for r in rows[1:]] == ["Eva"]
