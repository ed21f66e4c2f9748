"""
Waiting list entry: a deferred registration request for one event.

Active entries (promoted_at IS NULL) hold a dense 1..N position per event.
Promoted entries keep their row with position NULL and a link to the
pending payment they turned into. Positions are kept dense by the waiting
list service under the per-event lock rather than by a unique index, since
renumbering shifts many rows in one statement.
"""

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
)

from gameone.db.base import Base, TimestampMixin
from gameone.models.enums import PaymentMethod, RegistrationType


class WaitingListEntry(Base, TimestampMixin):
    __tablename__ = "waiting_list"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True)

    is_guest_request = Column(Boolean, nullable=False, default=False)
    guest_name = Column(String(255), nullable=True)
    guest_email = Column(String(255), nullable=True)
    guest_phone = Column(String(50), nullable=True)

    position = Column(Integer, nullable=True)
    registration_type = Column(
        Enum(RegistrationType, name="registration_type", native_enum=False, length=32),
        nullable=False,
        default=RegistrationType.INDIVIDUAL,
    )
    is_group_entry = Column(Boolean, nullable=False, default=False)
    group_size = Column(Integer, nullable=False, default=1)
    friends_data = Column(JSON, nullable=False, default=list)
    dietary_requirements = Column(String(500), nullable=True)
    special_requests = Column(String(1000), nullable=True)
    payment_method = Column(
        Enum(PaymentMethod, name="payment_method", native_enum=False, length=32),
        nullable=False,
        default=PaymentMethod.QR_CODE,
    )

    promoted_at = Column(DateTime(timezone=True), nullable=True)
    pending_payment_id = Column(
        Integer, ForeignKey("pending_payments.id", ondelete="SET NULL"), nullable=True
    )

    __table_args__ = (
        CheckConstraint("position IS NULL OR position > 0", name="check_waiting_list_position_positive"),
        CheckConstraint("group_size >= 1", name="check_waiting_list_group_size_positive"),
        Index("ix_waiting_list_event_position", "event_id", "position"),
    )

    @property
    def is_active(self) -> bool:
        return self.promoted_at is None

    def __repr__(self) -> str:
        return f"<WaitingListEntry(id={self.id}, event={self.event_id}, position={self.position}, size={self.group_size})>"
