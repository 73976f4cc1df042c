"""
Typed failures raised by the booking engine.

Each error carries a stable machine-readable ``code`` and the HTTP status the
API layer answers with. Infrastructure trouble is reported as ``Unavailable``;
everything else is a caller-input or business-rule failure.
"""
from fastapi import status


class BookingError(Exception):
    code = "booking_error"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidDateRange(BookingError):
    code = "invalid_date_range"


class InvalidGuestCount(BookingError):
    code = "invalid_guest_count"


class InvalidPricing(BookingError):
    code = "invalid_pricing"


class ResourceNotFound(BookingError):
    code = "resource_not_found"
    status_code = status.HTTP_404_NOT_FOUND


class DateRangeConflict(BookingError):
    code = "date_range_conflict"
    status_code = status.HTTP_409_CONFLICT


class BookingNotFound(BookingError):
    code = "booking_not_found"
    status_code = status.HTTP_404_NOT_FOUND


class IllegalTransition(BookingError):
    code = "illegal_transition"
    status_code = status.HTTP_409_CONFLICT


class Unavailable(BookingError):
    """The booking store or the listing service could not be reached."""
    code = "unavailable"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
