"""
Notification strategy factory.
Configures how notification intents leave the engine.
"""

from typing import Optional

from gameone.core.config import get_settings
from gameone.services.interfaces.log_notifications import LogDispatcher
from gameone.services.interfaces.notifications import NotificationDispatcher
from gameone.services.interfaces.outbox_notifications import OutboxDispatcher


def get_notification_strategy() -> NotificationDispatcher:
    """
    Build the configured dispatcher.

    - outbox (default): transactional outbox table
    - log: structured log only

    Overridden via the NOTIFICATION_BACKEND env var.
    """
    backend = get_settings().NOTIFICATION_BACKEND

    if backend == "log":
        return LogDispatcher()
    return OutboxDispatcher()


# Singleton instance
_dispatcher: Optional[NotificationDispatcher] = None


def get_dispatcher() -> NotificationDispatcher:
    """Get notification dispatcher singleton."""
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = get_notification_strategy()
    return _dispatcher


def set_dispatcher(dispatcher: Optional[NotificationDispatcher]) -> None:
    """Swap the dispatcher (None resets to the configured one)."""
    global _dispatcher
    _dispatcher = dispatcher
