"""
Error taxonomy for the reconciliation engine.

Every error carries the HTTP status the API layer answers with, so the
single handler in main.py can translate them without knowing each kind.
Only ConcurrencyConflictError is safe to retry automatically.
"""

from decimal import Decimal
from typing import Any, Optional

from fastapi import status


class GameOneError(Exception):
    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "gameone_error"
    retryable: bool = False

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict:
        return {"error": self.code, "detail": self.message, **self.context}


class NotFoundError(GameOneError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"

    def __init__(self, resource: str, resource_id: Any):
        super().__init__(f"{resource} {resource_id} not found", resource=resource, resource_id=resource_id)


class InvalidStateError(GameOneError):
    status_code = status.HTTP_409_CONFLICT
    code = "invalid_state"

    def __init__(self, resource: str, resource_id: Any, current: str, operation: str):
        super().__init__(
            f"Cannot {operation} {resource} {resource_id} in state {current}",
            resource=resource,
            resource_id=resource_id,
            current_status=current,
            operation=operation,
        )


class CapacityExceededError(GameOneError):
    status_code = status.HTTP_409_CONFLICT
    code = "capacity_exceeded"

    def __init__(self, event_id: int, requested: int, available: int):
        super().__init__(
            f"Event {event_id} has {available} spot(s) left, {requested} requested",
            event_id=event_id,
            requested=requested,
            available=available,
        )


class DuplicateRegistrationError(GameOneError):
    status_code = status.HTTP_409_CONFLICT
    code = "duplicate_registration"


class AmountMismatchError(GameOneError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "amount_mismatch"

    def __init__(self, pending_payment_id: int, expected: Decimal, reported: Decimal):
        super().__init__(
            f"Reported amount {reported} does not match expected {expected}",
            pending_payment_id=pending_payment_id,
            expected=str(expected),
            reported=str(reported),
        )


class ConcurrencyConflictError(GameOneError):
    status_code = status.HTTP_409_CONFLICT
    code = "concurrency_conflict"
    retryable = True

    def __init__(self, message: str = "Concurrent update detected, please retry", event_id: Optional[int] = None):
        super().__init__(message, event_id=event_id)


class ValidationError(GameOneError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "validation_error"
