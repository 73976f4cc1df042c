from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session
from typing import Annotated

from .. import schemas
from ..config import settings
from ..database import get_db
from ..models import BookingStatus, ResourceType
from ..reservations import ReservationService
from ..resources import HttpResourceRegistry, SqlResourceRegistry


router = APIRouter(prefix="/bookings", tags=["Bookings"])


def get_resource_registry(db: Session = Depends(get_db)):
    """
    Uses the marketplace listing API when RESOURCE_SERVICE_URL is configured,
    the local homestays/guides tables otherwise.
    """
    if not settings.RESOURCE_SERVICE_URL:
        yield SqlResourceRegistry(db)
        return

    registry = HttpResourceRegistry(settings.RESOURCE_SERVICE_URL, timeout=settings.RESOURCE_SERVICE_TIMEOUT)
    try:
        yield registry
    finally:
        registry.close()


def get_reservation_service(
        db: Session = Depends(get_db),
        registry=Depends(get_resource_registry),
) -> ReservationService:
    return ReservationService(db, registry)


Service = Annotated[ReservationService, Depends(get_reservation_service)]


@router.post("/", response_model=schemas.BookingRead, status_code=status.HTTP_201_CREATED)
def create_booking(booking: schemas.BookingCreate, service: Service):
    """
    Create a new booking. Fails with 409 if the dates are already taken.
    """
    return service.create_booking(booking)


@router.get("/", response_model=schemas.BookingPage)
def read_bookings(
        service: Service,
        status_filter: BookingStatus | None = Query(None, alias="status"),
        resource_type: ResourceType | None = Query(None, alias="resourceType"),
        resource_id: str | None = Query(None, alias="resourceId"),
        page: int = 1,
        limit: int | None = None,
):
    """
    List bookings, newest first, optionally filtered by status and resource.
    """
    return service.page_bookings(
        status=status_filter,
        resource_type=resource_type,
        resource_id=resource_id,
        page=page,
        limit=limit,
    )


@router.get("/number/{booking_number}", response_model=schemas.BookingRead)
def read_booking_by_number(booking_number: str, service: Service):
    booking = service.get_booking_by_number(booking_number)
    if booking is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found")
    return booking


@router.get("/{booking_id}", response_model=schemas.BookingRead)
def read_booking(booking_id: int, service: Service):
    booking = service.get_booking(booking_id)
    if booking is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found")
    return booking


@router.put("/{booking_id}/cancel", response_model=schemas.BookingRead)
def cancel_booking(booking_id: int, service: Service, payload: schemas.BookingCancel | None = None):
    """
    Cancel a pending or confirmed booking. The record is kept for history.
    """
    reason = payload.reason if payload else None
    return service.cancel_booking(booking_id, reason=reason)


@router.put("/{booking_id}/confirm", response_model=schemas.BookingRead)
def confirm_booking(booking_id: int, service: Service):
    return service.confirm_booking(booking_id)


@router.put("/{booking_id}/complete", response_model=schemas.BookingRead)
def complete_booking(booking_id: int, service: Service):
    return service.complete_booking(booking_id)
