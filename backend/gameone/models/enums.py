"""
Status and kind enumerations shared by the reconciliation models.
"""

import enum


class PendingPaymentStatus(str, enum.Enum):
    AWAITING_PAYMENT = "AWAITING_PAYMENT"
    PAYMENT_RECEIVED = "PAYMENT_RECEIVED"
    PROCESSED = "PROCESSED"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"


class RegistrationStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    REJECTED = "REJECTED"
    ATTENDED = "ATTENDED"
    NO_SHOW = "NO_SHOW"


class RegistrationType(str, enum.Enum):
    INDIVIDUAL = "INDIVIDUAL"
    GROUP = "GROUP"
    ADMIN_CREATED = "ADMIN_CREATED"


class RegistrationSource(str, enum.Enum):
    DIRECT = "DIRECT"
    PENDING_PAYMENT_CONFIRMED = "PENDING_PAYMENT_CONFIRMED"
    WAITING_LIST_PROMOTION = "WAITING_LIST_PROMOTION"
    ADMIN_CREATED = "ADMIN_CREATED"


class PaymentMethod(str, enum.Enum):
    BANK_TRANSFER = "BANK_TRANSFER"
    QR_CODE = "QR_CODE"
    CASH = "CASH"
    CARD = "CARD"
    OTHER = "OTHER"


class NotificationKind(str, enum.Enum):
    PAYMENT_CONFIRMATION_REQUESTED = "payment-confirmation-requested"
    PAYMENT_VERIFIED = "payment-verified"
    PAYMENT_REJECTED = "payment-rejected"
    WAITING_LIST_PROMOTED = "waiting-list-promoted"


# Statuses that consume capacity
COUNTED_REGISTRATION_STATUSES = (RegistrationStatus.CONFIRMED, RegistrationStatus.ATTENDED)
COUNTED_PAYMENT_STATUSES = (PendingPaymentStatus.PAYMENT_RECEIVED, PendingPaymentStatus.PROCESSED)

# Pending payments still tying up a requester
OPEN_PAYMENT_STATUSES = (PendingPaymentStatus.AWAITING_PAYMENT, PendingPaymentStatus.PAYMENT_RECEIVED)
