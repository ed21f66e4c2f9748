"""
Event model with capacity and pricing.

Key design decisions:
- Capacity is plain configuration. Usage is never stored on the event; it
  is recomputed from registrations and pending payments on every check, so
  an admin may change `capacity` at any time without resynchronising.
- `version` is the per-event optimistic lock. Every engine mutation of the
  event's registrations, pending payments or waiting list bumps it first,
  which serialises concurrent reconciliation for the same event.
- Index on `start_date` for the upcoming-events listing.
"""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
)

from gameone.db.base import Base, TimestampMixin


class Event(Base, TimestampMixin):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(String(2000), nullable=True)
    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=True)
    venue = Column(String(255), nullable=True)
    capacity = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="EUR")
    requires_payment = Column(Boolean, nullable=False, default=True)
    allow_waiting_list = Column(Boolean, nullable=False, default=True)
    bank_account_id = Column(Integer, ForeignKey("bank_accounts.id", ondelete="SET NULL"), nullable=True)

    # Optimistic locking version counter
    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        CheckConstraint("capacity >= 0", name="check_event_capacity_non_negative"),
        CheckConstraint("price >= 0", name="check_event_price_non_negative"),
        Index("ix_events_start_date", "start_date"),
    )

    @property
    def is_free(self) -> bool:
        return not self.requires_payment or not self.price

    def __repr__(self) -> str:
        return f"<Event(id={self.id}, title={self.title}, capacity={self.capacity})>"
