"""
Notification dispatcher interface.
The engine only emits intents; delivering email/SMS is someone else's job.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from gameone.models.enums import NotificationKind


@dataclass
class Recipient:
    user_id: Optional[int] = None
    email: Optional[str] = None
    name: Optional[str] = None


@dataclass
class NotificationIntent:
    kind: NotificationKind
    recipient: Recipient
    event_id: int
    payload: dict[str, Any] = field(default_factory=dict)


class NotificationDispatcher(ABC):
    """
    Interface for notification dispatch strategies.

    Implementations:
    - OutboxDispatcher: persist the intent in the current transaction
    - LogDispatcher: only log the intent (development, tests)
    """

    @abstractmethod
    async def emit(self, db: AsyncSession, intent: NotificationIntent) -> None:
        """
        Record one intent for a state transition.

        Must not raise on delivery problems: a notification never rolls
        back the transition it describes.
        """
        pass
