"""
Outbox notification strategy.
Intents become rows in notification_outbox, committed with the transition.
"""

from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from gameone.core.clock import utcnow
from gameone.core.logging import get_logger
from gameone.models.notification import NotificationOutbox
from gameone.services.interfaces.notifications import NotificationDispatcher, NotificationIntent

logger = get_logger(__name__)


class OutboxDispatcher(NotificationDispatcher):
    """
    Transactional outbox.

    Use when:
    - A separate worker delivers mail/SMS
    - Intents must survive process crashes together with the state change
    """

    async def emit(self, db: AsyncSession, intent: NotificationIntent) -> None:
        row = NotificationOutbox(
            kind=intent.kind,
            recipient_user_id=intent.recipient.user_id,
            recipient_email=intent.recipient.email,
            recipient_name=intent.recipient.name,
            event_id=intent.event_id,
            payload=intent.payload,
        )
        db.add(row)
        logger.info(
            "notification_queued",
            kind=intent.kind.value,
            event_id=intent.event_id,
            recipient=intent.recipient.email,
        )


async def list_pending(db: AsyncSession, limit: int = 100, event_id: Optional[int] = None) -> list[NotificationOutbox]:
    """Undelivered intents, oldest first."""
    query = select(NotificationOutbox).where(NotificationOutbox.dispatched_at.is_(None))
    if event_id is not None:
        query = query.where(NotificationOutbox.event_id == event_id)
    result = await db.execute(query.order_by(NotificationOutbox.id.asc()).limit(limit))
    return list(result.scalars().all())


async def mark_dispatched(db: AsyncSession, notification_ids: list[int]) -> int:
    if not notification_ids:
        return 0
    result = await db.execute(
        update(NotificationOutbox)
        .where(NotificationOutbox.id.in_(notification_ids), NotificationOutbox.dispatched_at.is_(None))
        .values(dispatched_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount
