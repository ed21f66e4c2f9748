"""
Event endpoints with Redis caching on the listing.
"""

from dataclasses import asdict

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from gameone.core.logging import get_logger
from gameone.core.security import get_admin_user_id
from gameone.db.session import get_db
from gameone.schemas.event import CapacityResponse, CapacityUpdate, EventCreate, EventListResponse, EventResponse
from gameone.services import audit_service, capacity_service
from gameone.services.cache_service import get_cached_events, invalidate_event_cache, set_cached_events
from gameone.services.event_service import create_event, get_event, list_events, update_capacity

logger = get_logger(__name__)
router = APIRouter(prefix="/events", tags=["Events"])


@router.post("/", response_model=EventResponse, status_code=status.HTTP_201_CREATED)
async def create_event_endpoint(
    event_data: EventCreate,
    admin_id: int = Depends(get_admin_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Create a new event. Requires the admin role."""
    event = await create_event(db, event_data, actor=audit_service.user_actor(admin_id))
    await invalidate_event_cache()
    return event


@router.get("/", response_model=EventListResponse)
async def list_events_endpoint(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    upcoming_only: bool = Query(True),
    db: AsyncSession = Depends(get_db),
):
    """
    List events with pagination.
    Served from Redis when cached; capacity is not part of the listing.
    """
    cached = await get_cached_events(page, page_size, upcoming_only)
    if cached:
        cached["cached"] = True
        return EventListResponse(**cached)

    events, total = await list_events(db, page, page_size, upcoming_only)
    response_data = {
        "events": [EventResponse.model_validate(e).model_dump(mode="json") for e in events],
        "total": total,
        "page": page,
        "page_size": page_size,
        "cached": False,
    }
    await set_cached_events(page, page_size, upcoming_only, response_data)
    return EventListResponse(**response_data)


@router.get("/{event_id}", response_model=EventResponse)
async def get_event_endpoint(event_id: int, db: AsyncSession = Depends(get_db)):
    return await get_event(db, event_id)


@router.get("/{event_id}/capacity", response_model=CapacityResponse)
async def get_capacity_endpoint(event_id: int, db: AsyncSession = Depends(get_db)):
    """Live capacity usage. Never cached."""
    summary = await capacity_service.capacity_summary(db, event_id)
    return CapacityResponse(**asdict(summary))


@router.put("/{event_id}/capacity", response_model=EventResponse)
async def update_capacity_endpoint(
    event_id: int,
    body: CapacityUpdate,
    admin_id: int = Depends(get_admin_user_id),
    db: AsyncSession = Depends(get_db),
):
    event = await update_capacity(db, event_id, body.capacity, actor=audit_service.user_actor(admin_id))
    await invalidate_event_cache()
    return event
