"""
Organizer endpoints: payment verification, registration management,
waiting list control and the notification outbox.

All routes require a token carrying role=admin.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from gameone.core.security import get_admin_user_id
from gameone.db.session import get_db
from gameone.models.enums import PendingPaymentStatus, RegistrationStatus
from gameone.schemas.notification import AuditLogResponse, DispatchRequest, DispatchResponse, NotificationResponse
from gameone.schemas.payment import (
    ExpirySweepResponse,
    PendingPaymentResponse,
    RejectPaymentRequest,
    VerifyPaymentRequest,
)
from gameone.schemas.registration import (
    AdminRegistrationRequest,
    AttendanceRequest,
    ConfirmRegistrationRequest,
    RegistrationResponse,
    RejectRegistrationRequest,
    Requester,
)
from gameone.schemas.waiting_list import WaitingListEntryResponse
from gameone.services import audit_service, payment_service, registration_service, waiting_list_service
from gameone.services.interfaces import outbox_notifications

router = APIRouter(prefix="/admin", tags=["Admin"])


# Pending payments

@router.get("/events/{event_id}/pending-payments", response_model=list[PendingPaymentResponse])
async def list_pending_payments_endpoint(
    event_id: int,
    payment_status: Optional[PendingPaymentStatus] = Query(None, alias="status"),
    admin_id: int = Depends(get_admin_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await payment_service.list_payments(db, event_id, payment_status)


@router.get("/pending-payments/{pending_payment_id}", response_model=PendingPaymentResponse)
async def get_pending_payment_endpoint(
    pending_payment_id: int,
    admin_id: int = Depends(get_admin_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await payment_service.get_payment(db, pending_payment_id)


@router.post("/pending-payments/{pending_payment_id}/verify", response_model=PendingPaymentResponse)
async def verify_payment_endpoint(
    pending_payment_id: int,
    body: VerifyPaymentRequest,
    admin_id: int = Depends(get_admin_user_id),
    db: AsyncSession = Depends(get_db),
):
    """
    Confirm the money arrived. Creates the registrations in the same
    transaction; a reported amount outside the tolerance is refused.
    """
    return await payment_service.verify(
        db,
        pending_payment_id,
        verified_by=admin_id,
        reported_amount=body.reported_amount,
        force=body.force,
    )


@router.post("/pending-payments/{pending_payment_id}/reject", response_model=PendingPaymentResponse)
async def reject_payment_endpoint(
    pending_payment_id: int,
    body: RejectPaymentRequest,
    admin_id: int = Depends(get_admin_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await payment_service.reject(
        db, pending_payment_id, body.reason, actor=audit_service.user_actor(admin_id)
    )


@router.post("/pending-payments/{pending_payment_id}/expire", response_model=PendingPaymentResponse)
async def expire_payment_endpoint(
    pending_payment_id: int,
    admin_id: int = Depends(get_admin_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await payment_service.expire(db, pending_payment_id, actor=audit_service.user_actor(admin_id))


@router.post("/pending-payments/expire-overdue", response_model=ExpirySweepResponse)
async def expire_overdue_endpoint(
    admin_id: int = Depends(get_admin_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Sweep every awaiting payment past its deadline."""
    expired = await payment_service.expire_overdue(db, actor=audit_service.user_actor(admin_id))
    return ExpirySweepResponse(expired_ids=expired, count=len(expired))


# Registrations

@router.get("/events/{event_id}/registrations", response_model=list[RegistrationResponse])
async def list_registrations_endpoint(
    event_id: int,
    registration_status: Optional[RegistrationStatus] = Query(None, alias="status"),
    admin_id: int = Depends(get_admin_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await registration_service.list_event_registrations(db, event_id, registration_status)


@router.post(
    "/events/{event_id}/registrations",
    response_model=list[RegistrationResponse],
    status_code=status.HTTP_201_CREATED,
)
async def admin_register_endpoint(
    event_id: int,
    body: AdminRegistrationRequest,
    admin_id: int = Depends(get_admin_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Register someone directly. `force` may overbook the event."""
    requester = Requester(user_id=body.user_id, guest=body.guest)
    actor = audit_service.user_actor(admin_id)
    if body.force:
        return await registration_service.force_register(db, event_id, requester, body.friends, actor=actor)
    return await registration_service.admin_register(
        db, event_id, requester, body.friends, actor=actor, confirm_now=body.confirm
    )


@router.post("/registrations/{registration_id}/confirm", response_model=RegistrationResponse)
async def confirm_registration_endpoint(
    registration_id: int,
    body: ConfirmRegistrationRequest,
    admin_id: int = Depends(get_admin_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await registration_service.confirm(
        db, registration_id, actor=audit_service.user_actor(admin_id), force=body.force
    )


@router.post("/registrations/{registration_id}/reject", response_model=RegistrationResponse)
async def reject_registration_endpoint(
    registration_id: int,
    body: RejectRegistrationRequest,
    admin_id: int = Depends(get_admin_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await registration_service.reject(
        db, registration_id, body.reason, actor=audit_service.user_actor(admin_id)
    )


@router.post("/registrations/{registration_id}/cancel", response_model=RegistrationResponse)
async def cancel_registration_endpoint(
    registration_id: int,
    admin_id: int = Depends(get_admin_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await registration_service.cancel(db, registration_id, actor=audit_service.user_actor(admin_id))


@router.post("/registrations/{registration_id}/attendance", response_model=RegistrationResponse)
async def attendance_endpoint(
    registration_id: int,
    body: AttendanceRequest,
    admin_id: int = Depends(get_admin_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await registration_service.mark_attendance(
        db, registration_id, body.attended, actor=audit_service.user_actor(admin_id)
    )


# Waiting list

@router.get("/events/{event_id}/waiting-list", response_model=list[WaitingListEntryResponse])
async def waiting_list_endpoint(
    event_id: int,
    admin_id: int = Depends(get_admin_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await waiting_list_service.list_entries(db, event_id)


@router.post("/events/{event_id}/waiting-list/promote", response_model=Optional[PendingPaymentResponse])
async def promote_endpoint(
    event_id: int,
    admin_id: int = Depends(get_admin_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Promote the first entry that fits; null when nothing was promoted."""
    return await waiting_list_service.promote_next(db, event_id, actor=audit_service.user_actor(admin_id))


@router.delete("/waiting-list/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_waiting_list_entry_endpoint(
    entry_id: int,
    admin_id: int = Depends(get_admin_user_id),
    db: AsyncSession = Depends(get_db),
):
    await waiting_list_service.dequeue(db, entry_id, actor=audit_service.user_actor(admin_id))


# Notifications and audit

@router.get("/notifications/pending", response_model=list[NotificationResponse])
async def pending_notifications_endpoint(
    event_id: Optional[int] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    admin_id: int = Depends(get_admin_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await outbox_notifications.list_pending(db, limit=limit, event_id=event_id)


@router.post("/notifications/dispatched", response_model=DispatchResponse)
async def mark_dispatched_endpoint(
    body: DispatchRequest,
    admin_id: int = Depends(get_admin_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Acknowledge intents delivered by the external mailer."""
    return DispatchResponse(dispatched=await outbox_notifications.mark_dispatched(db, body.notification_ids))


@router.get("/audit/{resource_type}/{resource_id}", response_model=list[AuditLogResponse])
async def audit_history_endpoint(
    resource_type: str,
    resource_id: int,
    admin_id: int = Depends(get_admin_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await audit_service.history(db, resource_type, resource_id)
