"""
PendingPayment model: an admitted registration request awaiting payment.

Key design decisions:
- Friends travel embedded as a JSON array so a verified payment can be
  materialised into leader + member registrations without re-validation.
- `variable_symbol` is unique across all pending payments; it is what the
  payer types into the bank transfer and what the verifier matches on.
- Rows are never deleted after PROCESSED/EXPIRED/CANCELLED; they remain as
  the payment audit record.
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
    Numeric,
    String,
)

from gameone.db.base import Base, TimestampMixin
from gameone.models.enums import PaymentMethod, PendingPaymentStatus, RegistrationType


class PendingPayment(Base, TimestampMixin):
    __tablename__ = "pending_payments"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True)

    # Guest contact, used when there is no user identity
    is_guest_request = Column(Boolean, nullable=False, default=False)
    guest_name = Column(String(255), nullable=True)
    guest_email = Column(String(255), nullable=True)
    guest_phone = Column(String(50), nullable=True)

    status = Column(
        Enum(PendingPaymentStatus, name="pending_payment_status", native_enum=False, length=32),
        nullable=False,
        default=PendingPaymentStatus.AWAITING_PAYMENT,
    )
    registration_type = Column(
        Enum(RegistrationType, name="registration_type", native_enum=False, length=32),
        nullable=False,
        default=RegistrationType.INDIVIDUAL,
    )
    total_participants = Column(Integer, nullable=False, default=1)
    friends_data = Column(JSON, nullable=False, default=list)
    dietary_requirements = Column(String(500), nullable=True)
    special_requests = Column(String(1000), nullable=True)

    # Money and bank routing
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    payment_method = Column(
        Enum(PaymentMethod, name="payment_method", native_enum=False, length=32),
        nullable=False,
        default=PaymentMethod.QR_CODE,
    )
    bank_account_id = Column(Integer, ForeignKey("bank_accounts.id", ondelete="SET NULL"), nullable=True)
    variable_symbol = Column(String(10), nullable=False, unique=True)
    qr_code_data = Column(String(1000), nullable=True)
    reported_amount = Column(Numeric(10, 2), nullable=True)

    # Lifecycle timestamps
    expires_at = Column(DateTime(timezone=True), nullable=False)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    verified_at = Column(DateTime(timezone=True), nullable=True)
    verified_by = Column(Integer, nullable=True)
    processed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    rejection_reason = Column(String(500), nullable=True)

    # Promotion provenance
    promoted_from_waiting_list = Column(Boolean, nullable=False, default=False)
    waiting_list_position = Column(Integer, nullable=True)

    __table_args__ = (
        CheckConstraint("total_participants >= 1", name="check_pending_payment_participants_positive"),
        CheckConstraint("amount >= 0", name="check_pending_payment_amount_non_negative"),
        Index("ix_pending_payments_event_status", "event_id", "status"),
    )

    @property
    def friend_count(self) -> int:
        return len(self.friends_data or [])

    def __repr__(self) -> str:
        return f"<PendingPayment(id={self.id}, event={self.event_id}, vs={self.variable_symbol}, status={self.status})>"
