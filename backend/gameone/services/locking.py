"""
Per-event serialization for the reconciliation engine.

CONCURRENCY STRATEGY: Optimistic Version Claim + Bounded Retry
===============================================================

Problem:
  Two requests race for the last spot. Both count confirmed registrations,
  both see one spot left, both create a pending payment. Result: overbooking.
  The same race duplicates or skips waiting-list positions when two
  enqueue/dequeue calls renumber the queue at once.

Solution:
  Before touching an event's registrations, pending payments or waiting
  list, an operation "claims" the event:

  1. Read the event's current version (fresh, bypassing the identity map)
  2. UPDATE events SET version = version + 1
     WHERE id = :event_id AND version = :seen_version
  3. If rows_affected == 0, another transaction got there first -> conflict

  A successful claim leaves the event row write-locked until the
  transaction ends, so every later claim for the same event waits and
  then fails its version check. Capacity checks, inserts and renumbering
  done after the claim are therefore serialized per event, while different
  events never contend.

  Conflicts roll the transaction back and retry with linear backoff. All
  engine operations re-read state, so a retry is a clean re-run.

Claims are remembered in session.info so nested engine calls in the same
transaction (cancel -> promote_next) do not claim twice; they are released
when the transaction commits or rolls back.
"""

import asyncio
import functools

from sqlalchemy import event as sa_event
from sqlalchemy import select, update
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from gameone.core.config import get_settings
from gameone.core.exceptions import ConcurrencyConflictError, NotFoundError
from gameone.core.logging import bind_event_context, get_logger
from gameone.core.metrics import record_lock_conflict
from gameone.models.event import Event

logger = get_logger(__name__)
settings = get_settings()

_CLAIMS_KEY = "claimed_events"
_RETRY_SCOPE_KEY = "conflict_retry_scope"


@sa_event.listens_for(Session, "after_commit")
@sa_event.listens_for(Session, "after_rollback")
def _release_claims(session: Session) -> None:
    session.info.pop(_CLAIMS_KEY, None)


async def load_event(db: AsyncSession, event_id: int) -> Event:
    """Read the event fresh from storage; capacity may change at any time."""
    result = await db.execute(
        select(Event).where(Event.id == event_id).execution_options(populate_existing=True)
    )
    event = result.scalar_one_or_none()
    if not event:
        raise NotFoundError("Event", event_id)
    return event


async def lock_event(db: AsyncSession, event_id: int) -> Event:
    """
    Claim the event for the rest of the transaction and return it.
    Raises ConcurrencyConflictError if another transaction claimed it first.
    """
    event = await load_event(db, event_id)
    claims = db.info.setdefault(_CLAIMS_KEY, set())
    if event_id in claims:
        return event

    seen_version = event.version
    result = await db.execute(
        update(Event)
        .where(Event.id == event_id, Event.version == seen_version)
        .values(version=Event.version + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        logger.info("event_claim_conflict", event_id=event_id, seen_version=seen_version)
        raise ConcurrencyConflictError(event_id=event_id)

    claims.add(event_id)
    bind_event_context(event_id)
    return await load_event(db, event_id)


def retry_on_conflict(func):
    """
    Retry an engine operation on ConcurrencyConflictError or a driver-level
    lock error, rolling back between attempts.

    The wrapped coroutine must take the session as its first argument.
    Only the outermost wrapped call retries; nested calls propagate so the
    whole transaction is re-run from the top.
    """

    @functools.wraps(func)
    async def wrapper(db: AsyncSession, *args, **kwargs):
        if db.info.get(_RETRY_SCOPE_KEY):
            return await func(db, *args, **kwargs)

        db.info[_RETRY_SCOPE_KEY] = True
        try:
            for attempt in range(1, settings.MAX_RETRY_ATTEMPTS + 1):
                try:
                    return await func(db, *args, **kwargs)
                except (ConcurrencyConflictError, OperationalError) as exc:
                    await db.rollback()
                    exhausted = attempt == settings.MAX_RETRY_ATTEMPTS
                    record_lock_conflict(exhausted)
                    logger.info(
                        "engine_retry",
                        operation=func.__name__,
                        attempt=attempt,
                        reason=type(exc).__name__,
                    )
                    if exhausted:
                        if isinstance(exc, ConcurrencyConflictError):
                            raise
                        raise ConcurrencyConflictError(
                            f"{func.__name__} failed after {attempt} attempts due to contention"
                        ) from exc
                    await asyncio.sleep(settings.RETRY_BACKOFF_SECONDS * attempt)
        finally:
            db.info.pop(_RETRY_SCOPE_KEY, None)

    return wrapper
