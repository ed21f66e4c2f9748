"""
Log-only notification strategy - nothing is persisted.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from gameone.core.logging import get_logger
from gameone.services.interfaces.notifications import NotificationDispatcher, NotificationIntent

logger = get_logger(__name__)


class LogDispatcher(NotificationDispatcher):
    """
    Write intents to the structured log only.

    Use when:
    - Running locally without a delivery worker
    - Delivery is handled by log shipping
    """

    async def emit(self, db: AsyncSession, intent: NotificationIntent) -> None:
        logger.info(
            "notification_intent",
            kind=intent.kind.value,
            event_id=intent.event_id,
            recipient=intent.recipient.email,
            payload=intent.payload,
        )
