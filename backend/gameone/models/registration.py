"""
Registration model: a durable participation record.

Key design decisions:
- A group is one leader row plus one member row per friend. Members point
  at the leader through `group_leader_id` and carry `friend_position`; the
  leader keeps the verbatim `friends_data` and `group_size`.
- Unique constraint on (user_id, event_id): one registration per user per
  event. Guests are deduplicated on (event_id, guest_email, guest_name).
- `pending_payment_id` is SET NULL when the payment row goes away so the
  registration itself survives.
"""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)

from gameone.db.base import Base, TimestampMixin
from gameone.models.enums import RegistrationSource, RegistrationStatus, RegistrationType


class Registration(Base, TimestampMixin):
    __tablename__ = "registrations"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True)

    is_guest_request = Column(Boolean, nullable=False, default=False)
    guest_name = Column(String(255), nullable=True)
    guest_email = Column(String(255), nullable=True)
    guest_phone = Column(String(50), nullable=True)

    status = Column(
        Enum(RegistrationStatus, name="registration_status", native_enum=False, length=32),
        nullable=False,
        default=RegistrationStatus.PENDING,
    )
    registration_type = Column(
        Enum(RegistrationType, name="registration_type", native_enum=False, length=32),
        nullable=False,
        default=RegistrationType.INDIVIDUAL,
    )
    source = Column(
        Enum(RegistrationSource, name="registration_source", native_enum=False, length=32),
        nullable=False,
        default=RegistrationSource.DIRECT,
    )

    # Group structure
    is_group_leader = Column(Boolean, nullable=False, default=True)
    group_size = Column(Integer, nullable=False, default=1)
    friend_position = Column(Integer, nullable=True)
    group_leader_id = Column(Integer, ForeignKey("registrations.id", ondelete="CASCADE"), nullable=True, index=True)
    friends_data = Column(JSON, nullable=False, default=list)

    dietary_requirements = Column(String(500), nullable=True)
    special_requests = Column(String(1000), nullable=True)
    requires_payment = Column(Boolean, nullable=False, default=True)

    pending_payment_id = Column(
        Integer, ForeignKey("pending_payments.id", ondelete="SET NULL"), nullable=True, index=True
    )
    promoted_from_waiting_list = Column(Boolean, nullable=False, default=False)
    waiting_list_position = Column(Integer, nullable=True)

    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    attended_at = Column(DateTime(timezone=True), nullable=True)
    rejection_reason = Column(String(500), nullable=True)

    __table_args__ = (
        UniqueConstraint("user_id", "event_id", name="uq_registration_user_event"),
        UniqueConstraint("event_id", "guest_email", "guest_name", name="uq_registration_guest_event"),
        Index("ix_registrations_event_status", "event_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<Registration(id={self.id}, event={self.event_id}, status={self.status}, leader={self.is_group_leader})>"
