"""
Participant-facing registration endpoints.

Requests may come from a signed-in user (bearer token) or from a guest who
supplies contact details in the body.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from gameone.core.exceptions import NotFoundError
from gameone.core.security import get_current_user_id, get_optional_user_id
from gameone.db.session import get_db
from gameone.schemas.payment import PendingPaymentResponse
from gameone.schemas.waiting_list import WaitingListEntryResponse
from gameone.schemas.registration import (
    RegistrationOutcomeResponse,
    RegistrationRequest,
    RegistrationResponse,
    Requester,
)
from gameone.services import audit_service, payment_service, registration_service, waiting_list_service
from gameone.services.payment_service import RegistrationOutcome

router = APIRouter(tags=["Registrations"])


def outcome_response(outcome: RegistrationOutcome) -> RegistrationOutcomeResponse:
    payment = outcome.pending_payment
    entry = outcome.waiting_list_entry
    return RegistrationOutcomeResponse(
        outcome=outcome.outcome,
        reason=outcome.reason,
        pending_payment=PendingPaymentResponse.model_validate(payment) if payment else None,
        waiting_list_entry=WaitingListEntryResponse.model_validate(entry) if entry else None,
        registrations=[RegistrationResponse.model_validate(r) for r in outcome.registrations],
    )


def _requester(user_id: Optional[int], body: RegistrationRequest) -> Requester:
    if user_id is not None:
        return Requester(user_id=user_id)
    if body.guest is None:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Guest contact details are required without a token",
        )
    return Requester(guest=body.guest)


@router.post(
    "/events/{event_id}/registrations",
    response_model=RegistrationOutcomeResponse,
    status_code=status.HTTP_201_CREATED,
)
async def request_registration_endpoint(
    event_id: int,
    body: RegistrationRequest,
    user_id: Optional[int] = Depends(get_optional_user_id),
    db: AsyncSession = Depends(get_db),
):
    """
    Ask to attend an event, optionally with friends.

    The outcome is one of pending_payment (pay using the returned
    instructions), waitlisted, registered (free events), duplicate or full.
    """
    outcome = await payment_service.request_registration(
        db,
        event_id,
        _requester(user_id, body),
        friends=body.friends,
        payment_method=body.payment_method,
        dietary_requirements=body.dietary_requirements,
        special_requests=body.special_requests,
    )
    return outcome_response(outcome)


@router.get("/registrations/me", response_model=list[RegistrationResponse])
async def my_registrations_endpoint(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await registration_service.list_user_registrations(db, user_id)


@router.post("/registrations/{registration_id}/cancel", response_model=RegistrationResponse)
async def cancel_registration_endpoint(
    registration_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Cancel your own registration; group members are cancelled with it."""
    registration = await registration_service.get_registration(db, registration_id)
    if registration.user_id != user_id:
        raise NotFoundError("Registration", registration_id)
    return await registration_service.cancel(db, registration_id, actor=audit_service.user_actor(user_id))


@router.get("/pending-payments/{pending_payment_id}", response_model=PendingPaymentResponse)
async def get_pending_payment_endpoint(
    pending_payment_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    payment = await payment_service.get_payment(db, pending_payment_id)
    if payment.user_id != user_id:
        raise NotFoundError("PendingPayment", pending_payment_id)
    return payment


@router.delete("/waiting-list/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
async def withdraw_waiting_list_endpoint(
    entry_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Leave the waiting list; everyone behind moves up one place."""
    entry = await waiting_list_service.get_entry(db, entry_id)
    if entry.user_id != user_id:
        raise NotFoundError("WaitingListEntry", entry_id)
    await waiting_list_service.dequeue(db, entry_id, actor=audit_service.user_actor(user_id))
