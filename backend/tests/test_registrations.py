"""
Tests for registration finalization, group cascades and organizer actions.
"""

import pytest

from gameone.core.exceptions import CapacityExceededError, DuplicateRegistrationError, InvalidStateError
from gameone.models.enums import RegistrationSource, RegistrationStatus, RegistrationType
from gameone.schemas.registration import FriendMember, GuestContact, Requester
from gameone.services import audit_service, capacity_service, payment_service, registration_service

FRIENDS = [
    FriendMember(name="Eva", email="eva@example.com", dietary_requirements="vegan"),
    FriendMember(name="Jan", phone="+421900111222"),
]


async def _registered_group(db, event_id, user_id, admin_id):
    outcome = await payment_service.request_registration(db, event_id, Requester(user_id=user_id), friends=FRIENDS)
    payment = await payment_service.verify(db, outcome.pending_payment.id, verified_by=admin_id)
    await db.commit()
    return payment, await registration_service.registrations_for_payment(db, payment.id)


@pytest.mark.asyncio
async def test_friends_data_copied_verbatim(db_session, test_event, test_user, admin_user):
    payment, rows = await _registered_group(db_session, test_event.id, test_user.id, admin_user.id)
    leader = rows[0]

    assert leader.friends_data == payment.friends_data
    assert leader.friends_data == [
        {"name": "Eva", "email": "eva@example.com", "dietary_requirements": "vegan"},
        {"name": "Jan", "phone": "+421900111222"},
    ]
    assert rows[1].dietary_requirements == "vegan"
    assert rows[2].guest_phone == "+421900111222"


@pytest.mark.asyncio
async def test_leader_group_size_matches_members(db_session, test_event, test_user, admin_user):
    _, rows = await _registered_group(db_session, test_event.id, test_user.id, admin_user.id)
    leader = rows[0]

    members = await registration_service.group_members(db_session, leader.id)
    assert leader.group_size == 1 + len(members)
    assert leader.registration_type == RegistrationType.GROUP


@pytest.mark.asyncio
async def test_cancelling_leader_cancels_group(db_session, test_event, test_user, admin_user):
    _, rows = await _registered_group(db_session, test_event.id, test_user.id, admin_user.id)
    leader_id = rows[0].id

    await registration_service.cancel(db_session, leader_id, actor="user:1")
    await db_session.commit()

    leader = await registration_service.get_registration(db_session, leader_id)
    members = await registration_service.group_members(db_session, leader_id)
    assert leader.status == RegistrationStatus.CANCELLED
    assert leader.cancelled_at is not None
    assert [m.status for m in members] == [RegistrationStatus.CANCELLED] * 2
    assert await capacity_service.effective_count(db_session, test_event.id, unit="person") == 0

    history = await audit_service.history(db_session, "Registration", leader_id)
    assert [e.action for e in history] == ["registration.created", "registration.cancelled"]


@pytest.mark.asyncio
async def test_cancelling_member_leaves_leader(db_session, test_event, test_user, admin_user):
    _, rows = await _registered_group(db_session, test_event.id, test_user.id, admin_user.id)
    leader_id, member_id = rows[0].id, rows[1].id

    await registration_service.cancel(db_session, member_id)
    await db_session.commit()

    assert (await registration_service.get_registration(db_session, member_id)).status == RegistrationStatus.CANCELLED
    assert (await registration_service.get_registration(db_session, leader_id)).status == RegistrationStatus.CONFIRMED


@pytest.mark.asyncio
async def test_cancel_twice_is_invalid(db_session, test_event, make_registration):
    registration = await make_registration(test_event)
    registration_id = registration.id
    await registration_service.cancel(db_session, registration_id)
    await db_session.commit()

    with pytest.raises(InvalidStateError):
        await registration_service.cancel(db_session, registration_id)
    await db_session.rollback()


@pytest.mark.asyncio
async def test_attendance(db_session, test_event, make_registration):
    present = await make_registration(test_event)
    absent = await make_registration(test_event)

    present = await registration_service.mark_attendance(db_session, present.id, True)
    absent = await registration_service.mark_attendance(db_session, absent.id, False)
    await db_session.commit()

    assert present.status == RegistrationStatus.ATTENDED
    assert present.attended_at is not None
    assert absent.status == RegistrationStatus.NO_SHOW
    assert await capacity_service.effective_count(db_session, test_event.id) == 1


@pytest.mark.asyncio
async def test_attendance_requires_confirmed(db_session, test_event, make_registration):
    registration = await make_registration(test_event, status=RegistrationStatus.PENDING)
    registration_id = registration.id

    with pytest.raises(InvalidStateError):
        await registration_service.mark_attendance(db_session, registration_id, True)
    await db_session.rollback()


@pytest.mark.asyncio
async def test_admin_registration_pending_then_confirmed(db_session, test_event, test_user):
    rows = await registration_service.admin_register(
        db_session, test_event.id, Requester(user_id=test_user.id), friends=FRIENDS, confirm_now=False
    )
    await db_session.commit()

    assert [r.status for r in rows] == [RegistrationStatus.PENDING] * 3
    assert rows[0].registration_type == RegistrationType.ADMIN_CREATED
    assert rows[0].source == RegistrationSource.ADMIN_CREATED
    assert rows[0].requires_payment is False
    assert await capacity_service.effective_count(db_session, test_event.id) == 0

    await registration_service.confirm(db_session, rows[0].id, actor="user:99")
    await db_session.commit()

    members = await registration_service.group_members(db_session, rows[0].id)
    assert [m.status for m in members] == [RegistrationStatus.CONFIRMED] * 2
    assert await capacity_service.effective_count(db_session, test_event.id) == 1


@pytest.mark.asyncio
async def test_confirm_checks_capacity_unless_forced(db_session, make_event, make_registration, test_user):
    """A pending group needs room for every participant, as it would at admission."""
    event = await make_event(capacity=2)
    await make_registration(event)
    group = await registration_service.admin_register(
        db_session, event.id, Requester(user_id=test_user.id), friends=FRIENDS, confirm_now=False
    )
    single = await make_registration(event, status=RegistrationStatus.PENDING)
    leader_id, single_id = group[0].id, single.id

    with pytest.raises(CapacityExceededError):
        await registration_service.confirm(db_session, leader_id)
    await db_session.rollback()

    confirmed = await registration_service.confirm(db_session, single_id)
    await db_session.commit()
    assert confirmed.status == RegistrationStatus.CONFIRMED

    confirmed = await registration_service.confirm(db_session, leader_id, force=True)
    await db_session.commit()
    assert confirmed.status == RegistrationStatus.CONFIRMED
    history = await audit_service.history(db_session, "Registration", leader_id)
    assert history[-1].action == "registration.confirmed"
    assert history[-1].details["forced"] is True


@pytest.mark.asyncio
async def test_reject_pending_group(db_session, test_event, test_user):
    rows = await registration_service.admin_register(
        db_session, test_event.id, Requester(user_id=test_user.id), friends=FRIENDS, confirm_now=False
    )
    await db_session.commit()
    leader_id = rows[0].id

    leader = await registration_service.reject(db_session, leader_id, "Incomplete details")
    await db_session.commit()

    assert leader.status == RegistrationStatus.REJECTED
    assert leader.rejection_reason == "Incomplete details"
    members = await registration_service.group_members(db_session, leader_id)
    assert [m.status for m in members] == [RegistrationStatus.REJECTED] * 2


@pytest.mark.asyncio
async def test_admin_register_respects_capacity(db_session, make_event, make_registration, test_user):
    event = await make_event(capacity=1)
    await make_registration(event)
    event_id, user_id = event.id, test_user.id

    with pytest.raises(CapacityExceededError):
        await registration_service.admin_register(db_session, event_id, Requester(user_id=user_id))
    await db_session.rollback()


@pytest.mark.asyncio
async def test_force_register_overbooks(db_session, make_event, make_registration, test_user):
    """The organizer bypass is the only way past capacity."""
    event = await make_event(capacity=1)
    await make_registration(event)

    rows = await registration_service.force_register(
        db_session, event.id, Requester(user_id=test_user.id), actor="user:99"
    )
    await db_session.commit()

    assert rows[0].status == RegistrationStatus.CONFIRMED
    assert await capacity_service.effective_count(db_session, event.id) == 2
    assert await capacity_service.available_spots(db_session, event.id) == 0

    history = await audit_service.history(db_session, "Registration", rows[0].id)
    assert history[0].action == "registration.admin_created"
    assert history[0].actor == "user:99"
    assert history[0].details["forced"] is True


@pytest.mark.asyncio
async def test_duplicate_registration_rejected(db_session, test_event):
    walk_in = Requester(guest=GuestContact(name="Walk In", email="walkin@example.com"))
    event_id = test_event.id
    await registration_service.admin_register(db_session, event_id, walk_in)
    await db_session.commit()

    with pytest.raises(DuplicateRegistrationError):
        await registration_service.admin_register(db_session, event_id, walk_in)
    await db_session.rollback()


@pytest.mark.asyncio
async def test_list_user_registrations(db_session, test_event, test_user, admin_user):
    await _registered_group(db_session, test_event.id, test_user.id, admin_user.id)

    mine = await registration_service.list_user_registrations(db_session, test_user.id)
    assert len(mine) == 1
    assert mine[0].is_group_leader is True

    confirmed = await registration_service.list_event_registrations(
        db_session, test_event.id, RegistrationStatus.CONFIRMED
    )
    assert len(confirmed) == 3
