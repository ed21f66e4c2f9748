from gameone.models.user import User
from gameone.models.bank_account import BankAccount
from gameone.models.event import Event
from gameone.models.pending_payment import PendingPayment
from gameone.models.registration import Registration
from gameone.models.waiting_list import WaitingListEntry
from gameone.models.audit_log import AuditLog
from gameone.models.notification import NotificationOutbox

__all__ = [
    "User", "BankAccount", "Event",
    "PendingPayment", "Registration", "WaitingListEntry",
    "AuditLog", "NotificationOutbox",
]
