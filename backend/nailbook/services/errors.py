"""
Domain errors raised by the allocator, ledger and reconciler.

Each error carries a machine-checkable ``kind`` and the HTTP status the API
renders it with (see ``main.booking_error_handler``).
"""


class BookingError(Exception):
    kind = "booking_error"
    status_code = 400

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(BookingError):
    kind = "validation_error"
    status_code = 400


class NotFound(BookingError):
    kind = "not_found"
    status_code = 404


class SlotUnavailable(BookingError):
    """Slot is missing, hidden, past, blocked or already reserved."""
    kind = "slot_unavailable"
    status_code = 409


class InsufficientConsecutiveSlots(BookingError):
    """The service needs more back-to-back slots than the day offers."""
    kind = "insufficient_consecutive_slots"
    status_code = 409
