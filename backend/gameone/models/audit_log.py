"""
Audit trail: one row per create or status transition of a pending payment,
registration or waiting list entry.
"""

from sqlalchemy import JSON, Column, Index, Integer, String

from gameone.db.base import Base, TimestampMixin


class AuditLog(Base, TimestampMixin):
    __tablename__ = "audit_log"

    id = Column(Integer, primary_key=True, index=True)
    actor = Column(String(100), nullable=False)
    action = Column(String(100), nullable=False)
    resource_type = Column(String(50), nullable=False)
    resource_id = Column(Integer, nullable=False)
    event_id = Column(Integer, nullable=True)
    details = Column(JSON, nullable=False, default=dict)

    __table_args__ = (
        Index("ix_audit_log_resource", "resource_type", "resource_id"),
        Index("ix_audit_log_event", "event_id"),
    )

    def __repr__(self) -> str:
        return f"<AuditLog(actor={self.actor}, action={self.action}, {self.resource_type}={self.resource_id})>"
