"""
Timezone helpers.

SQLite hands back naive datetimes even for DateTime(timezone=True) columns,
so everything read from storage goes through as_utc() before comparison.
"""

from datetime import datetime, timezone
from typing import Optional

# Expiry used when no payment deadline applies
NO_DEADLINE = datetime(9999, 12, 31, 23, 59, 59, tzinfo=timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
