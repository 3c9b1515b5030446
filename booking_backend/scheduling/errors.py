"""Errors raised by the booking engine.

Route handlers translate these into HTTP responses; engine code never builds
``HTTPException`` itself.
"""


class BookingError(Exception):
    """Base class for booking engine failures."""

    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(BookingError):
    """Malformed input: missing fields, unparseable instants, bad status."""


class NotFoundError(BookingError):
    """Unknown service, booking id or cancel token."""


class ConflictError(BookingError):
    """The requested interval overlaps a busy booking for the same service."""


class StoreError(BookingError):
    """Transient or unknown storage failure. Retry the whole operation."""

    retryable = True
