"""
Builds notification intents for engine transitions and hands them to the
configured dispatcher.
"""

from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gameone.models.enums import NotificationKind
from gameone.models.user import User
from gameone.services.interfaces.notifications import NotificationIntent, Recipient
from gameone.services.strategy_factory import get_dispatcher


async def resolve_recipient(
    db: AsyncSession,
    user_id: Optional[int],
    guest_name: Optional[str] = None,
    guest_email: Optional[str] = None,
) -> Recipient:
    if user_id is not None:
        result = await db.execute(select(User).where(User.id == user_id))
        user = result.scalar_one_or_none()
        if user:
            return Recipient(user_id=user.id, email=user.email, name=user.name)
    return Recipient(user_id=user_id, email=guest_email, name=guest_name)


async def notify(db: AsyncSession, kind: NotificationKind, row: Any, **payload: Any) -> NotificationIntent:
    """
    Emit one intent addressed to whoever made the request behind `row`
    (a pending payment or waiting list entry).
    """
    recipient = await resolve_recipient(db, row.user_id, row.guest_name, row.guest_email)
    intent = NotificationIntent(kind=kind, recipient=recipient, event_id=row.event_id, payload=payload)
    await get_dispatcher().emit(db, intent)
    return intent
