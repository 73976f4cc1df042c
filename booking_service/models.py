from dataclasses import dataclass
from enum import Enum as PyEnum
from typing import ClassVar
import datetime

from sqlalchemy import (
    Column, Integer, Date, TIMESTAMP, String, Text, Float, Index,
    CheckConstraint, UniqueConstraint, DDL, event, func, literal_column, text,
)
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.dialects.postgresql import ExcludeConstraint

from .database import Base


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


# --- ENUMS ---
class ResourceType(PyEnum):
    HOMESTAY = "homestay"
    GUIDE = "guide"


class BookingStatus(PyEnum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class PaymentStatus(PyEnum):
    PENDING = "pending"
    COMPLETED = "completed"
    REFUNDED = "refunded"
    FAILED = "failed"


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


# Shared so that PostgreSQL only ever creates one 'resourcetype' type.
resource_type_enum = SQLEnum(ResourceType, name="resourcetype", values_callable=_enum_values)


# --- Resource references ---
@dataclass(frozen=True)
class HomestayRef:
    id: str
    kind: ClassVar[ResourceType] = ResourceType.HOMESTAY


@dataclass(frozen=True)
class GuideRef:
    id: str
    kind: ClassVar[ResourceType] = ResourceType.GUIDE


ResourceRef = HomestayRef | GuideRef


def resource_ref(resource_type: ResourceType, resource_id: str) -> ResourceRef:
    match ResourceType(resource_type):
        case ResourceType.HOMESTAY:
            return HomestayRef(resource_id)
        case ResourceType.GUIDE:
            return GuideRef(resource_id)


def resource_key(resource: ResourceRef) -> str:
    """Stable per-resource key, e.g. 'homestay:42'."""
    return f"{resource.kind.value}:{resource.id}"


# --- Bookable resources (read by the SQL resource registry) ---
class Homestay(Base):
    __tablename__ = "homestays"

    id = Column(String(64), primary_key=True)
    title = Column(String(255), nullable=False)
    created_at = Column(TIMESTAMP(timezone=True), default=utcnow)


class Guide(Base):
    __tablename__ = "guides"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False)
    created_at = Column(TIMESTAMP(timezone=True), default=utcnow)


# --- Booking ---
BOOKING_NUMBER_CONSTRAINT_NAME = "uq_bookings_booking_number"


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    booking_number = Column(String(32), nullable=False)

    # Resources may live in another service, so no foreign key is enforced.
    resource_type = Column(resource_type_enum, nullable=False)
    resource_id = Column(String(64), nullable=False)
    resource_title_snapshot = Column(String(255), nullable=True)

    check_in = Column(Date, nullable=False)
    check_out = Column(Date, nullable=False)
    nights = Column(Integer, nullable=False)

    adults = Column(Integer, nullable=False)
    children = Column(Integer, nullable=False, default=0)
    total_guests = Column(Integer, nullable=False)

    guest_name = Column(String(255), nullable=False)
    guest_email = Column(String(255), nullable=False)
    guest_phone = Column(String(64), nullable=False)
    special_requests = Column(Text, nullable=True)

    base_price = Column(Float, nullable=False)
    cleaning_fee = Column(Float, nullable=True)
    service_fee = Column(Float, nullable=True)
    taxes = Column(Float, nullable=True)
    total_price = Column(Float, nullable=False)

    status = Column(
        SQLEnum(BookingStatus, name="bookingstatus", values_callable=_enum_values),
        default=BookingStatus.PENDING, nullable=False,
    )
    payment_status = Column(
        SQLEnum(PaymentStatus, name="paymentstatus", values_callable=_enum_values),
        default=PaymentStatus.PENDING, nullable=False,
    )
    cancellation_reason = Column(Text, nullable=True)
    cancelled_at = Column(TIMESTAMP(timezone=True), nullable=True)

    created_at = Column(TIMESTAMP(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(TIMESTAMP(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("booking_number", name=BOOKING_NUMBER_CONSTRAINT_NAME),
        CheckConstraint("check_in < check_out", name="ck_bookings_date_range"),
        CheckConstraint("total_price >= 0", name="ck_bookings_total_price"),
        CheckConstraint(
            "(status = 'cancelled' AND cancelled_at IS NOT NULL) "
            "OR (status != 'cancelled' AND cancelled_at IS NULL)",
            name="ck_bookings_cancelled_at",
        ),
        # Every availability check filters on exactly these columns.
        Index("ix_bookings_resource_range", "resource_type", "resource_id", "check_in", "check_out"),
        Index("ix_bookings_status", "status"),
        Index("ix_bookings_guest_email", "guest_email"),
        Index("ix_bookings_created_at", "created_at"),
    )

    @property
    def resource(self) -> ResourceRef:
        return resource_ref(self.resource_type, self.resource_id)

    @property
    def guests(self) -> dict:
        return {"adults": self.adults, "children": self.children, "total": self.total_guests}

    @property
    def guest_contact(self) -> dict:
        return {"name": self.guest_name, "email": self.guest_email, "phone": self.guest_phone}

    @property
    def pricing(self) -> dict:
        return {
            "base_price": self.base_price,
            "cleaning_fee": self.cleaning_fee,
            "service_fee": self.service_fee,
            "taxes": self.taxes,
            "total": self.total_price,
        }


# PostgreSQL also refuses overlapping active ranges for one resource at the
# storage layer. Other dialects rely on the resource lock alone.
OVERLAP_CONSTRAINT_NAME = "ex_bookings_active_overlap"

_bookings = Booking.__table__
_bookings.append_constraint(
    ExcludeConstraint(
        (_bookings.c.resource_type, "="),
        (_bookings.c.resource_id, "="),
        (func.daterange(_bookings.c.check_in, _bookings.c.check_out, literal_column("'[)'")), "&&"),
        name=OVERLAP_CONSTRAINT_NAME,
        using="gist",
        where=text("status IN ('pending', 'confirmed')"),
    ).ddl_if(dialect="postgresql")
)

event.listen(
    Booking.__table__,
    "before_create",
    DDL("CREATE EXTENSION IF NOT EXISTS btree_gist").execute_if(dialect="postgresql"),
)


class ResourceLock(Base):
    """
    One row per bookable resource. Creating a booking bumps ``version`` first
    thing in its transaction, which serializes writers for the same resource.
    """
    __tablename__ = "resource_locks"

    resource_type = Column(resource_type_enum, primary_key=True)
    resource_id = Column(String(64), primary_key=True)
    version = Column(Integer, nullable=False, default=0)
    updated_at = Column(TIMESTAMP(timezone=True), default=utcnow, onupdate=utcnow)


class OutboxEvent(Base):
    __tablename__ = "outbox_events"

    id = Column(Integer, primary_key=True, index=True)

    # Status to track if the event has been sent
    status = Column(String(20), default="PENDING", nullable=False)

    # The Kafka topic to send the message to
    topic = Column(String(255), nullable=False)

    # Partition key, one per resource so its events stay ordered
    key = Column(String(128), nullable=True)

    # The full JSON payload to be sent
    payload = Column(Text, nullable=False)

    created_at = Column(TIMESTAMP, default=utcnow)

    __table_args__ = (
        Index('ix_outbox_events_status', 'status'),
    )
