from gameone.schemas.event import EventCreate, EventResponse, EventListResponse, CapacityResponse, CapacityUpdate
from gameone.schemas.payment import (
    PendingPaymentResponse, VerifyPaymentRequest, RejectPaymentRequest, ExpirySweepResponse,
)
from gameone.schemas.waiting_list import WaitingListEntryResponse
from gameone.schemas.notification import (
    NotificationResponse, DispatchRequest, DispatchResponse, AuditLogResponse,
)
from gameone.schemas.registration import (
    FriendMember, GuestContact, Requester, normalize_friends, identity_fields, identity_of,
    RegistrationRequest, AdminRegistrationRequest,
    RegistrationResponse, RegistrationOutcomeResponse,
    AttendanceRequest, RejectRegistrationRequest, ConfirmRegistrationRequest,
)

__all__ = [
    "EventCreate", "EventResponse", "EventListResponse", "CapacityResponse", "CapacityUpdate",
    "PendingPaymentResponse", "VerifyPaymentRequest", "RejectPaymentRequest", "ExpirySweepResponse",
    "WaitingListEntryResponse",
    "FriendMember", "GuestContact", "Requester", "normalize_friends", "identity_fields", "identity_of",
    "NotificationResponse", "DispatchRequest", "DispatchResponse", "AuditLogResponse",
    "RegistrationRequest", "AdminRegistrationRequest",
    "RegistrationResponse", "RegistrationOutcomeResponse",
    "AttendanceRequest", "RejectRegistrationRequest", "ConfirmRegistrationRequest",
]
