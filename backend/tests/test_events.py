"""
Tests for event endpoints and live capacity.
"""

import pytest
from datetime import datetime, timezone, timedelta
from httpx import AsyncClient

from gameone.models.enums import PendingPaymentStatus
from gameone.schemas.registration import GuestContact, Requester
from gameone.services import waiting_list_service


def event_payload(**overrides) -> dict:
    payload = {
        "title": "Autumn League",
        "description": "Five-a-side football",
        "start_date": (datetime.now(timezone.utc) + timedelta(days=30)).isoformat(),
        "venue": "Sports Hall",
        "capacity": 12,
        "price": "15.00",
        "currency": "EUR",
    }
    payload.update(overrides)
    return payload


@pytest.mark.asyncio
async def test_create_event(client: AsyncClient, admin_headers):
    """Organizer can create an event."""
    response = await client.post("/api/v1/events/", json=event_payload(), headers=admin_headers)
    assert response.status_code == 201
    data = response.json()
    assert data["title"] == "Autumn League"
    assert data["capacity"] == 12
    assert data["price"] == "15.00"

    capacity = await client.get(f"/api/v1/events/{data['id']}/capacity")
    assert capacity.json()["available_spots"] == 12  # Whole capacity free initially


@pytest.mark.asyncio
async def test_create_event_requires_admin(client: AsyncClient, auth_headers):
    response = await client.post("/api/v1/events/", json=event_payload(), headers=auth_headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_create_event_unauthenticated(client: AsyncClient):
    """Unauthenticated request returns 401."""
    response = await client.post("/api/v1/events/", json=event_payload())
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_create_event_past_date(client: AsyncClient, admin_headers):
    """Event with past date returns 422."""
    past_date = (datetime.now(timezone.utc) - timedelta(days=1)).isoformat()
    response = await client.post(
        "/api/v1/events/", json=event_payload(start_date=past_date), headers=admin_headers
    )
    assert response.status_code == 422
    assert response.json()["error"] == "validation_error"


@pytest.mark.asyncio
async def test_create_event_negative_capacity(client: AsyncClient, admin_headers):
    response = await client.post("/api/v1/events/", json=event_payload(capacity=-1), headers=admin_headers)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_list_events(client: AsyncClient, test_event):
    """List events returns paginated results."""
    response = await client.get("/api/v1/events/")
    assert response.status_code == 200
    data = response.json()
    assert data["total"] >= 1
    assert len(data["events"]) >= 1
    assert data["page"] == 1
    assert data["cached"] is False


@pytest.mark.asyncio
async def test_list_events_pagination(client: AsyncClient, test_event):
    """Pagination parameters work correctly."""
    response = await client.get("/api/v1/events/?page=1&page_size=5")
    assert response.status_code == 200
    data = response.json()
    assert data["page_size"] == 5


@pytest.mark.asyncio
async def test_get_event(client: AsyncClient, test_event):
    """Get single event by ID."""
    response = await client.get(f"/api/v1/events/{test_event.id}")
    assert response.status_code == 200
    data = response.json()
    assert data["id"] == test_event.id
    assert data["title"] == "Summer Cup"


@pytest.mark.asyncio
async def test_get_event_not_found(client: AsyncClient):
    """Non-existent event returns 404."""
    response = await client.get("/api/v1/events/99999")
    assert response.status_code == 404
    assert response.json()["error"] == "not_found"


@pytest.mark.asyncio
async def test_capacity_endpoint(client: AsyncClient, test_event, make_registration, make_payment):
    await make_registration(test_event)
    await make_payment(test_event, PendingPaymentStatus.PAYMENT_RECEIVED)
    await make_payment(test_event)

    response = await client.get(f"/api/v1/events/{test_event.id}/capacity")
    assert response.status_code == 200
    data = response.json()
    assert data["capacity"] == 3
    assert data["effective_count"] == 2
    assert data["available_spots"] == 1
    assert data["admission_spots"] == 0
    assert data["awaiting_payment"] == 1
    assert data["unit"] == "slot"


@pytest.mark.asyncio
async def test_capacity_increase_promotes_waiting_list(
    client: AsyncClient, db_session, admin_headers, make_event, fresh_session
):
    event = await make_event(capacity=0)
    for n in (1, 2):
        await waiting_list_service.enqueue(
            db_session, event.id, Requester(guest=GuestContact(name=f"Fan {n}", email=f"fan{n}@example.com"))
        )
    await db_session.commit()

    response = await client.put(
        f"/api/v1/events/{event.id}/capacity", json={"capacity": 1}, headers=admin_headers
    )
    assert response.status_code == 200
    assert response.json()["capacity"] == 1

    entries = await waiting_list_service.list_entries(fresh_session, event.id)
    assert [(e.guest_name, e.position) for e in entries] == [("Fan 2", 1)]


@pytest.mark.asyncio
async def test_capacity_update_requires_admin(client: AsyncClient, auth_headers, test_event):
    response = await client.put(
        f"/api/v1/events/{test_event.id}/capacity", json={"capacity": 10}, headers=auth_headers
    )
    assert response.status_code == 403
