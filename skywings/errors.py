"""
Typed booking errors.

Every business failure of the booking core has a class here with a stable
``code``. Repositories and the seat functions raise them; ``BookingLifecycle``
turns them into ``BookingResult`` failures at its public boundary.
"""
from typing import Any, Dict, Optional


class BookingError(Exception):
    """Base class for expected booking-core failures."""

    code = "BOOKING_ERROR"

    def __init__(self, message: str = "", details: Optional[Dict[str, Any]] = None):
        super().__init__(message or self.code)
        self.message = message or self.code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        payload = {"error": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(BookingError):
    code = "VALIDATION_ERROR"


class NotFoundError(BookingError):
    code = "NOT_FOUND"


class CapacityError(BookingError):
    code = "CAPACITY_ERROR"


class ContentionError(CapacityError):
    """Seat allocation gave up after repeated concurrent conflicts."""

    code = "CONTENTION"


class InvalidStateTransition(BookingError):
    code = "INVALID_STATE_TRANSITION"


class PaymentVerificationFailed(BookingError):
    code = "PAYMENT_VERIFICATION_FAILED"


class ConflictError(BookingError):
    """Compare-and-swap on a flight's seat state lost against another writer."""

    code = "CONFLICT"


class BookingStateConflict(ConflictError):
    """The booking left its expected status before the write committed."""

    code = "BOOKING_STATE_CONFLICT"
