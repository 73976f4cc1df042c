import datetime
import math

import pytest

from booking_service import lifecycle
from booking_service.errors import IllegalTransition, InvalidDateRange, InvalidGuestCount, InvalidPricing
from booking_service.lifecycle import BookingEvent
from booking_service.models import BookingStatus

NOW = datetime.datetime(2024, 3, 1, 12, 0, tzinfo=datetime.timezone.utc)


# --- State machine ---

@pytest.mark.parametrize("current, event, expected", [
    (BookingStatus.PENDING, BookingEvent.CONFIRM, BookingStatus.CONFIRMED),
    (BookingStatus.PENDING, BookingEvent.CANCEL, BookingStatus.CANCELLED),
    (BookingStatus.CONFIRMED, BookingEvent.CANCEL, BookingStatus.CANCELLED),
    (BookingStatus.CONFIRMED, BookingEvent.COMPLETE, BookingStatus.COMPLETED),
])
def test_legal_transitions(current, event, expected):
    assert lifecycle.next_status(current, event) is expected


@pytest.mark.parametrize("current, event", [
    (BookingStatus.PENDING, BookingEvent.COMPLETE),
    (BookingStatus.CONFIRMED, BookingEvent.CONFIRM),
])
def test_other_moves_from_active_states_are_rejected(current, event):
    with pytest.raises(IllegalTransition):
        lifecycle.next_status(current, event)


@pytest.mark.parametrize("terminal", [BookingStatus.CANCELLED, BookingStatus.COMPLETED])
@pytest.mark.parametrize("event", list(BookingEvent))
def test_terminal_states_have_no_way_out(terminal, event):
    with pytest.raises(IllegalTransition) as excinfo:
        lifecycle.next_status(terminal, event)
    assert terminal.value in str(excinfo.value)


def test_status_groups():
    assert set(lifecycle.ACTIVE_STATUSES) == {BookingStatus.PENDING, BookingStatus.CONFIRMED}
    assert set(lifecycle.TERMINAL_STATUSES) == {BookingStatus.CANCELLED, BookingStatus.COMPLETED}


def test_cancel_values_stamp_time_and_reason():
    values = lifecycle.transition_values(BookingStatus.CANCELLED, NOW, reason="Changed plans")
    assert values == {
        "status": BookingStatus.CANCELLED,
        "updated_at": NOW,
        "cancelled_at": NOW,
        "cancellation_reason": "Changed plans",
    }


def test_confirm_values_leave_cancellation_fields_alone():
    values = lifecycle.transition_values(BookingStatus.CONFIRMED, NOW)
    assert values == {"status": BookingStatus.CONFIRMED, "updated_at": NOW}


# --- Derived fields ---

def test_nights_for_three_night_stay():
    assert lifecycle.compute_nights(datetime.date(2024, 3, 15), datetime.date(2024, 3, 18)) == 3


def test_nights_round_partial_days_up():
    check_in = datetime.datetime(2024, 3, 15, 14, 0)
    check_out = datetime.datetime(2024, 3, 17, 11, 0)
    assert lifecycle.compute_nights(check_in, check_out) == 2


def test_total_guests():
    assert lifecycle.total_guests(2, 1) == 3


def test_email_is_trimmed_and_lowercased():
    assert lifecycle.normalize_email("  John.Doe@Example.COM ") == "john.doe@example.com"


# --- Validation ---

@pytest.mark.parametrize("check_in, check_out", [
    (datetime.date(2024, 3, 15), datetime.date(2024, 3, 15)),
    (datetime.date(2024, 3, 18), datetime.date(2024, 3, 15)),
])
def test_zero_and_negative_night_ranges_are_invalid(check_in, check_out):
    with pytest.raises(InvalidDateRange):
        lifecycle.validate_date_range(check_in, check_out)


def test_at_least_one_adult_required():
    with pytest.raises(InvalidGuestCount):
        lifecycle.validate_guests(0, 2)


def test_children_cannot_be_negative():
    with pytest.raises(InvalidGuestCount):
        lifecycle.validate_guests(2, -1)


def test_pricing_accepts_zero_and_missing_fees():
    lifecycle.validate_pricing(0.0, 0.0)
    lifecycle.validate_pricing(4500.0, 5000.0, cleaning_fee=None, service_fee=300.0, taxes=200.0)


@pytest.mark.parametrize("kwargs", [
    {"base_price": 100.0, "total": -1.0},
    {"base_price": -5.0, "total": 100.0},
    {"base_price": 100.0, "total": 100.0, "cleaning_fee": -10.0},
    {"base_price": 100.0, "total": 100.0, "taxes": -0.01},
    {"base_price": 100.0, "total": math.nan},
    {"base_price": 100.0, "total": math.inf},
])
def test_pricing_rejects_negative_or_non_finite_figures(kwargs):
    with pytest.raises(InvalidPricing):
        lifecycle.validate_pricing(**kwargs)


def test_pricing_total_is_not_recomputed():
    # A total that differs from the sum of its parts is the caller's business.
    lifecycle.validate_pricing(4500.0, 10.0, cleaning_fee=500.0)
