"""
Declarative base and shared column mixins for all ORM models.
"""

from sqlalchemy import Column, DateTime, func
from sqlalchemy.orm import declarative_base

from gameone.core.clock import utcnow

Base = declarative_base()


class TimestampMixin:
    # Python-side defaults keep the values loaded after a flush; the server
    # defaults cover rows written outside the ORM (migrations, psql).
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
    )
