"""
Service interfaces for dependency inversion.
Allows swapping implementations without changing business logic.
"""

from gameone.services.interfaces.log_notifications import LogDispatcher
from gameone.services.interfaces.notifications import NotificationDispatcher, NotificationIntent, Recipient
from gameone.services.interfaces.outbox_notifications import OutboxDispatcher

__all__ = ["NotificationDispatcher", "NotificationIntent", "Recipient", "OutboxDispatcher", "LogDispatcher"]
