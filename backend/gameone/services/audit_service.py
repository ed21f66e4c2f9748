"""
Audit trail for reconciliation transitions.

Every create and status change of a pending payment, registration or
waiting list entry is recorded exactly once, in the same transaction as
the change, as (actor, action, resource, timestamp, details).
"""

from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gameone.core.logging import get_logger
from gameone.models.audit_log import AuditLog

logger = get_logger(__name__)

SYSTEM_ACTOR = "system"


def user_actor(user_id: Optional[int]) -> str:
    return f"user:{user_id}" if user_id is not None else SYSTEM_ACTOR


def _jsonable(value: Any) -> Any:
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if hasattr(value, "value"):  # enums
        return value.value
    return str(value)


async def record(
    db: AsyncSession,
    actor: Optional[str],
    action: str,
    resource_type: str,
    resource_id: int,
    event_id: Optional[int] = None,
    **details: Any,
) -> AuditLog:
    entry = AuditLog(
        actor=actor or SYSTEM_ACTOR,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        event_id=event_id,
        details=_jsonable(details),
    )
    db.add(entry)
    logger.info(
        "audit",
        actor=entry.actor,
        action=action,
        resource=f"{resource_type}:{resource_id}",
        event_id=event_id,
    )
    return entry


async def history(db: AsyncSession, resource_type: str, resource_id: int) -> list[AuditLog]:
    result = await db.execute(
        select(AuditLog)
        .where(AuditLog.resource_type == resource_type, AuditLog.resource_id == resource_id)
        .order_by(AuditLog.id.asc())
    )
    return list(result.scalars().all())
