"""
Reservation service: creates bookings without ever double-booking a resource,
and moves existing bookings through their lifecycle.

Creation is check-then-insert inside one transaction that first takes the
resource's lock row (see ``crud.lock_resource``). Two requests for the same
resource therefore run their overlap checks one after the other, and the
second one sees the first one's committed booking. On PostgreSQL the
``ex_bookings_active_overlap`` exclusion constraint backs this up; a
violation of it is reported as a conflict as well.
"""
import datetime
import logging
import math
import secrets
from contextlib import contextmanager
from typing import Callable

from sqlalchemy import exc as sa_exc
from sqlalchemy.orm import Session

from . import crud, lifecycle, models, schemas
from .config import settings
from .errors import BookingNotFound, DateRangeConflict, IllegalTransition, ResourceNotFound, Unavailable
from .lifecycle import BookingEvent
from .resources import ResourceRegistry

logger = logging.getLogger("booking_service")

# Failures of the store itself rather than of the request
STORE_UNAVAILABLE_ERRORS = (
    sa_exc.OperationalError,
    sa_exc.TimeoutError,
    sa_exc.DisconnectionError,
)


class BookingNumberTaken(Exception):
    """The generated booking number already exists; pick another one."""


def generate_booking_number(today: datetime.date | None = None) -> str:
    """Returns a reference like 'BK-2026-9F2C4A1B'."""
    today = today or datetime.date.today()
    return f"{settings.BOOKING_NUMBER_PREFIX}-{today.year}-{secrets.token_hex(4).upper()}"


def parse_pagination(page: int | None, limit: int | None) -> tuple[int, int]:
    """Clamps page to >= 1 and limit to [1, MAX_PAGE_LIMIT]."""
    page = max(1, page or 1)
    limit = min(settings.MAX_PAGE_LIMIT, max(1, limit or settings.DEFAULT_PAGE_LIMIT))
    return page, limit


def pagination_meta(page: int, limit: int, total: int) -> schemas.PaginationMeta:
    return schemas.PaginationMeta(
        current_page=page,
        total_pages=math.ceil(total / limit),
        total_results=total,
        limit=limit,
    )


class ReservationService:
    def __init__(
        self,
        db: Session,
        registry: ResourceRegistry,
        *,
        booking_number_factory: Callable[[], str] = generate_booking_number,
        max_number_attempts: int | None = None,
        clock: Callable[[], datetime.datetime] = models.utcnow,
    ):
        self.db = db
        self.registry = registry
        self.booking_number_factory = booking_number_factory
        self.max_number_attempts = max_number_attempts or settings.BOOKING_NUMBER_MAX_ATTEMPTS
        self.clock = clock

    @contextmanager
    def _unit_of_work(self):
        """Rolls back on any failure; store outages surface as Unavailable."""
        try:
            yield
        except STORE_UNAVAILABLE_ERRORS as e:
            self.db.rollback()
            logger.error(f"Booking store unavailable: {e}")
            raise Unavailable("Booking store is unavailable, please retry.") from e
        except Exception:
            self.db.rollback()
            raise

    # --- Creation ---

    def create_booking(self, request: schemas.BookingCreate) -> models.Booking:
        """
        Validates the request and reserves the dates for the resource.

        Raises InvalidDateRange, InvalidGuestCount, InvalidPricing,
        ResourceNotFound, DateRangeConflict or Unavailable.
        """
        guests, pricing = request.guests, request.pricing

        # 1. Reject malformed requests before touching any collaborator
        lifecycle.validate_date_range(request.check_in, request.check_out)
        lifecycle.validate_guests(guests.adults, guests.children)
        lifecycle.validate_pricing(
            pricing.base_price,
            pricing.total,
            cleaning_fee=pricing.cleaning_fee,
            service_fee=pricing.service_fee,
            taxes=pricing.taxes,
        )

        # 2. The resource has to exist
        resource = models.resource_ref(request.resource_type, request.resource_id)
        with self._unit_of_work():
            if not self.registry.exists(resource):
                raise ResourceNotFound(f"{resource.kind.value.capitalize()} {resource.id} not found.")
            title = self.registry.title_of(resource)

            # 3. Cheap pre-check; repeated under the resource lock below
            if crud.has_conflict(self.db, resource, request.check_in, request.check_out):
                self._reject_conflict(resource, request.check_in, request.check_out)

        values = dict(
            resource_type=resource.kind,
            resource_id=resource.id,
            resource_title_snapshot=title,
            check_in=request.check_in,
            check_out=request.check_out,
            nights=lifecycle.compute_nights(request.check_in, request.check_out),
            adults=guests.adults,
            children=guests.children,
            total_guests=lifecycle.total_guests(guests.adults, guests.children),
            guest_name=request.guest_contact.name,
            guest_email=lifecycle.normalize_email(request.guest_contact.email),
            guest_phone=request.guest_contact.phone,
            special_requests=request.special_requests,
            base_price=pricing.base_price,
            cleaning_fee=pricing.cleaning_fee,
            service_fee=pricing.service_fee,
            taxes=pricing.taxes,
            total_price=pricing.total,
            status=models.BookingStatus.PENDING,
            payment_status=models.PaymentStatus.PENDING,
        )

        # 4. Insert under the lock, retrying only booking-number collisions
        for attempt in range(1, self.max_number_attempts + 1):
            booking_number = self.booking_number_factory()
            try:
                booking = self._insert(resource, booking_number, values)
            except BookingNumberTaken:
                logger.warning(
                    f"Booking number {booking_number} already taken "
                    f"(attempt {attempt}/{self.max_number_attempts}), regenerating."
                )
                continue
            logger.info(
                f"Booking {booking.booking_number} created for {models.resource_key(resource)} "
                f"from {booking.check_in} to {booking.check_out}."
            )
            return booking

        logger.error(f"Gave up allocating a booking number after {self.max_number_attempts} attempts.")
        raise Unavailable("Could not allocate a booking number, please retry.")

    def _insert(self, resource: models.ResourceRef, booking_number: str, values: dict) -> models.Booking:
        with self._unit_of_work():
            crud.lock_resource(self.db, resource)

            # Re-check now that no other writer can touch this resource
            if crud.has_conflict(self.db, resource, values["check_in"], values["check_out"]):
                self._reject_conflict(resource, values["check_in"], values["check_out"])

            booking = models.Booking(booking_number=booking_number, **values)
            try:
                return crud.create_booking(self.db, booking)
            except sa_exc.IntegrityError as e:
                if crud.is_constraint_violation(e, models.BOOKING_NUMBER_CONSTRAINT_NAME):
                    raise BookingNumberTaken(booking_number) from e
                if crud.is_constraint_violation(e, models.OVERLAP_CONSTRAINT_NAME):
                    logger.info(f"Exclusion constraint rejected an overlap on {models.resource_key(resource)}.")
                    raise DateRangeConflict("The resource is already booked for these dates.") from e
                raise

    @staticmethod
    def _reject_conflict(resource: models.ResourceRef, check_in: datetime.date, check_out: datetime.date):
        logger.info(f"Rejected {check_in}..{check_out} on {models.resource_key(resource)}: dates taken.")
        raise DateRangeConflict("The resource is already booked for these dates.")

    # --- Transitions ---

    def cancel_booking(self, booking_id: int, reason: str | None = None) -> models.Booking:
        return self._transition(booking_id, BookingEvent.CANCEL, reason=reason)

    def confirm_booking(self, booking_id: int) -> models.Booking:
        return self._transition(booking_id, BookingEvent.CONFIRM)

    def complete_booking(self, booking_id: int) -> models.Booking:
        return self._transition(booking_id, BookingEvent.COMPLETE)

    def _transition(self, booking_id: int, event: BookingEvent, reason: str | None = None) -> models.Booking:
        with self._unit_of_work():
            booking = crud.get_booking(self.db, booking_id)
            if booking is None:
                raise BookingNotFound(f"Booking {booking_id} not found.")

            current = booking.status
            target = lifecycle.next_status(current, event)
            values = lifecycle.transition_values(target, self.clock(), reason=reason)

            if not crud.apply_transition(self.db, booking.id, current, values):
                # Someone else moved it between our read and our write
                self.db.rollback()
                latest = crud.get_booking(self.db, booking_id)
                if latest is None:
                    raise BookingNotFound(f"Booking {booking_id} not found.")
                raise IllegalTransition(
                    f"Cannot {event.value} a booking that is {latest.status.value}."
                )

            crud.add_outbox_event(self.db, booking, f"booking.{target.value}", target)
            self.db.commit()
            self.db.refresh(booking)

        logger.info(f"Booking {booking.booking_number} moved from {current.value} to {target.value}.")
        return booking

    # --- Reads ---

    def get_booking(self, booking_id: int) -> models.Booking | None:
        with self._unit_of_work():
            return crud.get_booking(self.db, booking_id)

    def get_booking_by_number(self, booking_number: str) -> models.Booking | None:
        with self._unit_of_work():
            return crud.get_booking_by_number(self.db, booking_number)

    def list_bookings(
        self,
        status: models.BookingStatus | None = None,
        resource_type: models.ResourceType | None = None,
        resource_id: str | None = None,
        page: int | None = 1,
        limit: int | None = None,
    ) -> tuple[list[models.Booking], int]:
        page, limit = parse_pagination(page, limit)
        return self._query_bookings(status, resource_type, resource_id, page, limit)

    def page_bookings(
        self,
        status: models.BookingStatus | None = None,
        resource_type: models.ResourceType | None = None,
        resource_id: str | None = None,
        page: int | None = 1,
        limit: int | None = None,
    ) -> schemas.BookingPage:
        """Same as list_bookings, wrapped with the pagination metadata of the clamped page."""
        page, limit = parse_pagination(page, limit)
        items, total = self._query_bookings(status, resource_type, resource_id, page, limit)
        return schemas.BookingPage(
            items=[schemas.BookingRead.model_validate(b) for b in items],
            pagination=pagination_meta(page, limit, total),
        )

    def _query_bookings(self, status, resource_type, resource_id, page: int, limit: int):
        with self._unit_of_work():
            return crud.list_bookings(
                self.db,
                status=status,
                resource_type=resource_type,
                resource_id=resource_id,
                skip=(page - 1) * limit,
                limit=limit,
            )
