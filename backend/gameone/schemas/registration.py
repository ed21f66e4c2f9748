"""
Pydantic schemas for registration requests, requesters and outcomes.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, model_validator
from pydantic import ValidationError as PydanticValidationError

from gameone.core.exceptions import ValidationError

from gameone.models.enums import PaymentMethod, RegistrationSource, RegistrationStatus, RegistrationType
from gameone.schemas.payment import PendingPaymentResponse
from gameone.schemas.waiting_list import WaitingListEntryResponse


class FriendMember(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=50)
    dietary_requirements: Optional[str] = Field(None, max_length=500)
    special_requests: Optional[str] = Field(None, max_length=1000)


class GuestContact(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    phone: Optional[str] = Field(None, max_length=50)


class Requester(BaseModel):
    """Who a request is made for: an identified user or a guest contact."""

    user_id: Optional[int] = None
    guest: Optional[GuestContact] = None

    @model_validator(mode="after")
    def _one_identity(self):
        if (self.user_id is None) == (self.guest is None):
            raise ValueError("exactly one of user_id or guest is required")
        return self

    @property
    def is_guest(self) -> bool:
        return self.user_id is None

    @property
    def label(self) -> str:
        return f"user:{self.user_id}" if self.user_id is not None else f"guest:{self.guest.email}"


class RegistrationRequest(BaseModel):
    friends: list[FriendMember] = Field(default_factory=list)
    payment_method: PaymentMethod = PaymentMethod.QR_CODE
    guest: Optional[GuestContact] = None
    dietary_requirements: Optional[str] = Field(None, max_length=500)
    special_requests: Optional[str] = Field(None, max_length=1000)


class AdminRegistrationRequest(BaseModel):
    user_id: Optional[int] = None
    guest: Optional[GuestContact] = None
    friends: list[FriendMember] = Field(default_factory=list)
    confirm: bool = True
    force: bool = False


class RegistrationResponse(BaseModel):
    id: int
    event_id: int
    user_id: Optional[int]
    guest_name: Optional[str]
    guest_email: Optional[str]
    status: RegistrationStatus
    registration_type: RegistrationType
    source: RegistrationSource
    is_group_leader: bool
    group_size: int
    friend_position: Optional[int]
    group_leader_id: Optional[int]
    friends_data: list
    pending_payment_id: Optional[int]
    promoted_from_waiting_list: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class RegistrationOutcomeResponse(BaseModel):
    outcome: str
    reason: Optional[str] = None
    pending_payment: Optional[PendingPaymentResponse] = None
    waiting_list_entry: Optional[WaitingListEntryResponse] = None
    registrations: list[RegistrationResponse] = Field(default_factory=list)


class AttendanceRequest(BaseModel):
    attended: bool


class RejectRegistrationRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class ConfirmRegistrationRequest(BaseModel):
    force: bool = False


def guest_key(name: Optional[str], email: Optional[str]) -> Optional[tuple]:
    """(email, name) pair that identifies a guest row, or None without an email."""
    if not email:
        return None
    return (str(email), name)


def normalize_friends(friends, max_group_size: int, leader: Optional[Requester] = None) -> list[dict]:
    """
    Validate friend members and return them as plain JSON-ready dicts,
    preserving order. The same dicts are stored on the pending payment, the
    waiting list entry and the leader registration.

    Friends with an email must be distinct from each other and from a guest
    leader, since each becomes its own guest registration.
    """
    normalized = []
    for friend in friends or []:
        if not isinstance(friend, FriendMember):
            try:
                friend = FriendMember.model_validate(friend)
            except PydanticValidationError as exc:
                raise ValidationError("Invalid friend data", errors=exc.errors(include_url=False)) from exc
        normalized.append(friend.model_dump(mode="json", exclude_none=True))
    if 1 + len(normalized) > max_group_size:
        raise ValidationError(
            f"Group of {1 + len(normalized)} exceeds the maximum of {max_group_size}",
            group_size=1 + len(normalized),
        )

    seen = set()
    if leader is not None and leader.is_guest:
        seen.add(guest_key(leader.guest.name, leader.guest.email))
    for position, friend in enumerate(normalized, start=1):
        key = guest_key(friend["name"], friend.get("email"))
        if key is None:
            continue
        if key in seen:
            raise ValidationError(
                f"Friend {friend['name']} appears more than once in the group",
                friend_position=position,
            )
        seen.add(key)
    return normalized


def identity_fields(requester: Requester) -> dict:
    """Column values identifying the requester on engine rows."""
    if requester.is_guest:
        return {
            "user_id": None,
            "is_guest_request": True,
            "guest_name": requester.guest.name,
            "guest_email": str(requester.guest.email),
            "guest_phone": requester.guest.phone,
        }
    return {
        "user_id": requester.user_id,
        "is_guest_request": False,
        "guest_name": None,
        "guest_email": None,
        "guest_phone": None,
    }


def identity_of(row) -> dict:
    """Identity columns copied from an existing pending payment or queue entry."""
    return {
        "user_id": row.user_id,
        "is_guest_request": row.is_guest_request,
        "guest_name": row.guest_name,
        "guest_email": row.guest_email,
        "guest_phone": row.guest_phone,
    }
