"""
Notification outbox.

Intents are written in the same transaction as the state change they
describe; an external deliverer drains undispatched rows. A failed
delivery therefore never rolls back the transition.
"""

from sqlalchemy import JSON, Column, DateTime, Enum, Index, Integer, String

from gameone.db.base import Base, TimestampMixin
from gameone.models.enums import NotificationKind


class NotificationOutbox(Base, TimestampMixin):
    __tablename__ = "notification_outbox"

    id = Column(Integer, primary_key=True, index=True)
    kind = Column(
        Enum(
            NotificationKind,
            name="notification_kind",
            native_enum=False,
            length=40,
            values_callable=lambda kinds: [k.value for k in kinds],
        ),
        nullable=False,
    )
    recipient_user_id = Column(Integer, nullable=True)
    recipient_email = Column(String(255), nullable=True)
    recipient_name = Column(String(255), nullable=True)
    event_id = Column(Integer, nullable=False)
    payload = Column(JSON, nullable=False, default=dict)
    dispatched_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_notification_outbox_undispatched", "dispatched_at"),
    )

    def __repr__(self) -> str:
        return f"<NotificationOutbox(id={self.id}, kind={self.kind}, to={self.recipient_email})>"
