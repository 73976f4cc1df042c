from pydantic import AliasGenerator, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
import datetime

from .models import BookingStatus, PaymentStatus, ResourceType

# Requests accept camelCase keys (or the Python names); responses are
# serialized in camelCase straight from ORM attributes.
CAMEL_INPUT = ConfigDict(alias_generator=to_camel, populate_by_name=True)
CAMEL_OUTPUT = ConfigDict(
    alias_generator=AliasGenerator(serialization_alias=to_camel),
    from_attributes=True,
)


class GuestCount(BaseModel):
    adults: int
    children: int = 0
    # Accepted for compatibility, always recomputed as adults + children
    total: int | None = None


class GuestContact(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)


class Pricing(BaseModel):
    model_config = CAMEL_INPUT

    base_price: float
    cleaning_fee: float | None = None
    service_fee: float | None = None
    taxes: float | None = None
    total: float


class BookingCreate(BaseModel):
    model_config = CAMEL_INPUT

    resource_type: ResourceType
    resource_id: str = Field(..., min_length=1)
    check_in: datetime.date
    check_out: datetime.date
    guests: GuestCount
    guest_contact: GuestContact
    pricing: Pricing
    special_requests: str | None = None


class BookingCancel(BaseModel):
    reason: str | None = None


class BookingRead(BaseModel):
    model_config = CAMEL_OUTPUT

    id: int
    booking_number: str
    resource_type: ResourceType
    resource_id: str
    resource_title_snapshot: str | None = None
    check_in: datetime.date
    check_out: datetime.date
    nights: int
    guests: GuestCount
    guest_contact: GuestContact
    special_requests: str | None = None
    pricing: Pricing
    status: BookingStatus
    payment_status: PaymentStatus
    cancellation_reason: str | None = None
    cancelled_at: datetime.datetime | None = None
    created_at: datetime.datetime
    updated_at: datetime.datetime


class PaginationMeta(BaseModel):
    model_config = CAMEL_OUTPUT

    current_page: int
    total_pages: int
    total_results: int
    limit: int


class BookingPage(BaseModel):
    items: list[BookingRead]
    pagination: PaginationMeta
