"""
Booking status state machine and the rules applied when a booking is created.

Everything here is pure: the reservation service calls these functions
explicitly and persists whatever they return.
"""
import datetime
import math
from enum import Enum as PyEnum

from .errors import IllegalTransition, InvalidDateRange, InvalidGuestCount, InvalidPricing
from .models import BookingStatus


class BookingEvent(PyEnum):
    CONFIRM = "confirm"
    CANCEL = "cancel"
    COMPLETE = "complete"


TRANSITIONS: dict[BookingStatus, dict[BookingEvent, BookingStatus]] = {
    BookingStatus.PENDING: {
        BookingEvent.CONFIRM: BookingStatus.CONFIRMED,
        BookingEvent.CANCEL: BookingStatus.CANCELLED,
    },
    BookingStatus.CONFIRMED: {
        BookingEvent.CANCEL: BookingStatus.CANCELLED,
        BookingEvent.COMPLETE: BookingStatus.COMPLETED,
    },
    BookingStatus.CANCELLED: {},
    BookingStatus.COMPLETED: {},
}

# Only these block the dates they cover.
ACTIVE_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED)
TERMINAL_STATUSES = tuple(s for s, moves in TRANSITIONS.items() if not moves)


def next_status(current: BookingStatus, event: BookingEvent) -> BookingStatus:
    """Returns the status ``event`` leads to from ``current``, or raises IllegalTransition."""
    target = TRANSITIONS[current].get(event)
    if target is None:
        raise IllegalTransition(
            f"Cannot {event.value} a booking that is {current.value}."
        )
    return target


def transition_values(target: BookingStatus, now: datetime.datetime, reason: str | None = None) -> dict:
    """Column updates for moving a booking into ``target``."""
    values = {"status": target, "updated_at": now}
    if target is BookingStatus.CANCELLED:
        values["cancelled_at"] = now
        values["cancellation_reason"] = reason
    return values


# --- Creation rules ---

def validate_date_range(check_in: datetime.date, check_out: datetime.date) -> None:
    if check_in >= check_out:
        raise InvalidDateRange("Check-out date must be after check-in date.")


def validate_guests(adults: int, children: int) -> None:
    if adults < 1:
        raise InvalidGuestCount("At least one adult is required.")
    if children < 0:
        raise InvalidGuestCount("Number of children cannot be negative.")


def validate_pricing(
    base_price: float,
    total: float,
    cleaning_fee: float | None = None,
    service_fee: float | None = None,
    taxes: float | None = None,
) -> None:
    """
    Checks the caller-supplied figures. The total is not recomputed from its
    components; it only has to be a non-negative number like the rest.
    """
    figures = {
        "basePrice": base_price,
        "cleaningFee": cleaning_fee,
        "serviceFee": service_fee,
        "taxes": taxes,
        "total": total,
    }
    for name, value in figures.items():
        if value is None:
            continue
        if not math.isfinite(value) or value < 0:
            raise InvalidPricing(f"Pricing field '{name}' must be a non-negative number.")


def compute_nights(check_in: datetime.date, check_out: datetime.date) -> int:
    return math.ceil((check_out - check_in) / datetime.timedelta(days=1))


def total_guests(adults: int, children: int) -> int:
    return adults + children


def normalize_email(email: str) -> str:
    return email.strip().lower()
