import json
import datetime
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from . import models
from .config import settings  # Need this for the topic name
from .lifecycle import ACTIVE_STATUSES


def has_conflict(
    db: Session,
    resource: models.ResourceRef,
    check_in: datetime.date,
    check_out: datetime.date,
    exclude_booking_id: int | None = None,
) -> bool:
    """
    Checks if the half-open range [check_in, check_out) overlaps any active
    booking of the same resource.

    Returns True if a conflict exists, False otherwise.
    """
    # The logic for an overlap is:
    # (Existing Check-in < New Check-out) AND (New Check-in < Existing Check-out)
    # A checkout on day X and a check-in on day X do not overlap.
    query = db.query(models.Booking.id).filter(
        models.Booking.resource_type == resource.kind,
        models.Booking.resource_id == resource.id,
        models.Booking.status.in_(ACTIVE_STATUSES),
        models.Booking.check_in < check_out,
        models.Booking.check_out > check_in,
    )
    if exclude_booking_id is not None:
        query = query.filter(models.Booking.id != exclude_booking_id)

    return bool(db.query(query.exists()).scalar())


def lock_resource(db: Session, resource: models.ResourceRef) -> None:
    """
    Takes the write lock of ``resource`` for the rest of the current transaction.

    The lock row is bumped with an UPDATE, so a second transaction doing the
    same for the same resource waits until the first commits or rolls back.
    Must be the first statement of the unit of work that inserts a booking.
    """
    lock_filter = (
        models.ResourceLock.resource_type == resource.kind,
        models.ResourceLock.resource_id == resource.id,
    )
    for _ in range(2):
        updated = db.query(models.ResourceLock).filter(*lock_filter).update(
            {
                models.ResourceLock.version: models.ResourceLock.version + 1,
                models.ResourceLock.updated_at: models.utcnow(),
            },
            synchronize_session=False,
        )
        if updated:
            return

        # First booking ever for this resource: create its lock row.
        db.add(models.ResourceLock(resource_type=resource.kind, resource_id=resource.id, version=1))
        try:
            db.flush()
            return
        except IntegrityError:
            # Another transaction created the row first; it is committed now.
            db.rollback()

    raise RuntimeError(f"Could not lock resource {models.resource_key(resource)}")


def is_constraint_violation(exc: IntegrityError, constraint: str) -> bool:
    """
    True when the driver blames ``constraint`` for ``exc``. PostgreSQL reports
    the constraint name; SQLite reports the offending column.
    """
    message = str(exc.orig)
    if constraint == models.BOOKING_NUMBER_CONSTRAINT_NAME:
        return constraint in message or "bookings.booking_number" in message
    return constraint in message


def create_booking(db: Session, booking: models.Booking) -> models.Booking:
    """
    Inserts a new booking together with its 'booking.created' outbox event
    and commits both at once.
    """
    # 1. Insert the booking so it gets its ID
    db.add(booking)
    db.flush()

    # 2. Queue the outbox event in the same transaction
    add_outbox_event(db, booking, "booking.created", booking.status)

    # 3. Commit the transaction (atomically)
    db.commit()

    # 4. Refresh the booking object to get server-side values
    db.refresh(booking)
    return booking


def get_booking(db: Session, booking_id: int) -> models.Booking | None:
    return db.query(models.Booking).filter(models.Booking.id == booking_id).first()


def get_booking_by_number(db: Session, booking_number: str) -> models.Booking | None:
    return db.query(models.Booking).filter(models.Booking.booking_number == booking_number).first()


def list_bookings(
    db: Session,
    status: models.BookingStatus | None = None,
    resource_type: models.ResourceType | None = None,
    resource_id: str | None = None,
    skip: int = 0,
    limit: int = 10,
) -> tuple[list[models.Booking], int]:
    """
    Returns one page of bookings, newest first, and the total number of
    bookings matching the filters.
    """
    query = db.query(models.Booking)
    if status is not None:
        query = query.filter(models.Booking.status == status)
    if resource_type is not None:
        query = query.filter(models.Booking.resource_type == resource_type)
    if resource_id is not None:
        query = query.filter(models.Booking.resource_id == resource_id)

    total = query.count()
    items = (
        query.order_by(models.Booking.created_at.desc(), models.Booking.id.desc())
        .offset(skip)
        .limit(limit)
        .all()
    )
    return items, total


def apply_transition(
    db: Session,
    booking_id: int,
    expected_status: models.BookingStatus,
    values: dict,
) -> bool:
    """
    Updates the booking only if it is still in ``expected_status``.
    Note: Does NOT commit.

    Returns False when another transaction moved the booking first.
    """
    updated = db.query(models.Booking).filter(
        models.Booking.id == booking_id,
        models.Booking.status == expected_status,
    ).update(values, synchronize_session=False)
    return updated == 1


def add_outbox_event(db: Session, booking: models.Booking, event_name: str, status: models.BookingStatus):
    """
    Creates a booking lifecycle event in the outbox table.
    Note: Does NOT commit. The caller is responsible for the commit.
    """
    # 1. Create the Kafka message payload
    payload = {
        "event": event_name,
        "booking_id": booking.id,
        "booking_number": booking.booking_number,
        "resource_type": booking.resource_type.value,
        "resource_id": booking.resource_id,
        "check_in": booking.check_in.isoformat(),
        "check_out": booking.check_out.isoformat(),
        "status": status.value,
    }

    # 2. Create the outbox event object
    db_outbox_event = models.OutboxEvent(
        topic=settings.KAFKA_BOOKING_TOPIC,
        key=models.resource_key(booking.resource),
        payload=json.dumps(payload),
        status="PENDING"
    )

    # 3. Add to the session
    db.add(db_outbox_event)
    return db_outbox_event
