from __future__ import annotations

import re
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from hallbookings.models import (
    BookingSource,
    BookingStatus,
    InvoiceStatus,
    InvoiceType,
    QuotationStatus,
    RateType,
)
from hallbookings.slots import minutes_of_day, normalize_time

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_RE = re.compile(r"^[+]?[1-9]\d{0,15}$")
PHONE_SEPARATORS_RE = re.compile(r"[\s\-()]")


def _required_text(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError("Missing required fields")
    return v


def _email(v: str) -> str:
    v = v.strip().lower()
    if not EMAIL_RE.match(v):
        raise ValueError("Invalid email format")
    return v


def _phone(v: str) -> str:
    v = v.strip()
    if not PHONE_RE.match(PHONE_SEPARATORS_RE.sub("", v)):
        raise ValueError("Invalid phone number format")
    return v


def _check_time_range(start_time: str, end_time: str) -> None:
    if minutes_of_day(end_time) <= minutes_of_day(start_time):
        raise ValueError("End time must be after start time")


# ---------------------------------------------------------------------------
# Bookings
# ---------------------------------------------------------------------------


class BookingCreate(BaseModel):
    customer_name: str
    customer_email: str
    customer_phone: str
    event_type: str
    hall_id: UUID
    hall_owner_id: UUID
    booking_date: date
    start_time: str
    end_time: str
    additional_description: str | None = Field(default=None, max_length=2000)
    estimated_price: float | None = None

    @field_validator("customer_name", "event_type", mode="after")
    @classmethod
    def require_text(cls, v: str) -> str:
        return _required_text(v)

    @field_validator("customer_email", mode="after")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return _email(v)

    @field_validator("customer_phone", mode="after")
    @classmethod
    def validate_phone(cls, v: str) -> str:
        return _phone(v)

    @field_validator("booking_date", mode="after")
    @classmethod
    def not_in_past(cls, v: date) -> date:
        # date-only comparison, time of day is irrelevant
        if v < date.today():
            raise ValueError("Booking date cannot be in the past")
        return v

    @field_validator("start_time", "end_time", mode="after")
    @classmethod
    def validate_time(cls, v: str) -> str:
        return normalize_time(v)

    @model_validator(mode="after")
    def validate_time_range(self) -> BookingCreate:
        _check_time_range(self.start_time, self.end_time)
        return self


class BookingStatusUpdate(BaseModel):
    status: BookingStatus


class BookingPriceUpdate(BaseModel):
    calculated_price: Decimal | None = None
    price_details: dict[str, Any] | None = None
    notes: str | None = None

    @field_validator("calculated_price", mode="before")
    @classmethod
    def non_negative_number(cls, v: Any) -> Any:
        if v is None:
            return v
        if isinstance(v, bool) or not isinstance(v, (int, float)) or v < 0:
            raise ValueError("Calculated price must be a non-negative number")
        return Decimal(str(v))


class BookingResponse(BaseModel):
    id: UUID
    customer_name: str
    customer_email: str
    customer_phone: str
    event_type: str
    hall_id: UUID
    hall_owner_id: UUID
    hall_name: str
    booking_date: date
    start_time: str
    end_time: str
    additional_description: str
    guest_count: int | None = None
    status: BookingStatus
    calculated_price: Decimal
    price_details: dict[str, Any] | None = None
    price_notes: str | None = None
    booking_source: BookingSource
    quotation_id: UUID | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ConflictingSlot(BaseModel):
    start_time: str
    end_time: str
    customer_name: str


class UnavailableSlot(BaseModel):
    """Occupied slot as shown on the public calendar."""

    booking_id: UUID
    start_time: str
    end_time: str
    customer_name: str
    event_type: str
    status: BookingStatus


class UnavailableDates(BaseModel):
    # booking_date -> hall_id -> slots
    unavailable_dates: dict[str, dict[str, list[UnavailableSlot]]]
    total_bookings: int


class UnavailableFilters(BaseModel):
    """Bind to a FastAPI route via Depends(UnavailableFilters)."""

    resource_id: UUID | None = None
    start_date: date | None = None
    end_date: date | None = None

    def cache_suffix(self) -> str:
        return f"{self.resource_id or '*'}:{self.start_date or '*'}:{self.end_date or '*'}"


# ---------------------------------------------------------------------------
# Quotations
# ---------------------------------------------------------------------------


class QuotationCreate(BaseModel):
    customer_name: str
    customer_email: str
    customer_phone: str
    event_type: str
    resource_id: UUID
    event_date: date
    start_time: str
    end_time: str
    guest_count: int | None = Field(default=None, ge=0)
    total_amount: Decimal = Field(gt=0)
    valid_until: datetime | None = None
    notes: str | None = None

    @field_validator("customer_name", "customer_phone", "event_type", mode="after")
    @classmethod
    def require_text(cls, v: str) -> str:
        return _required_text(v)

    @field_validator("customer_email", mode="after")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return _email(v)

    @field_validator("start_time", "end_time", mode="after")
    @classmethod
    def validate_time(cls, v: str) -> str:
        return normalize_time(v)

    @model_validator(mode="after")
    def validate_time_range(self) -> QuotationCreate:
        _check_time_range(self.start_time, self.end_time)
        return self


class QuotationUpdate(BaseModel):
    """Editable quotation fields. Status, owner and booking link are not editable here."""

    customer_name: str | None = None
    customer_email: str | None = None
    customer_phone: str | None = None
    event_type: str | None = None
    event_date: date | None = None
    start_time: str | None = None
    end_time: str | None = None
    guest_count: int | None = Field(default=None, ge=0)
    total_amount: Decimal | None = Field(default=None, gt=0)
    valid_until: datetime | None = None
    notes: str | None = None

    @field_validator("customer_email", mode="after")
    @classmethod
    def validate_email(cls, v: str | None) -> str | None:
        return _email(v) if v is not None else v

    @field_validator("start_time", "end_time", mode="after")
    @classmethod
    def validate_time(cls, v: str | None) -> str | None:
        return normalize_time(v) if v is not None else v

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True, exclude_none=True)


class QuotationStatusUpdate(BaseModel):
    status: QuotationStatus


class QuotationResponse(BaseModel):
    id: UUID
    quotation_number: str
    customer_name: str
    customer_email: str
    customer_phone: str
    event_type: str
    resource_id: UUID
    resource_name: str
    event_date: date
    start_time: str
    end_time: str
    guest_count: int | None = None
    total_amount: Decimal
    valid_until: datetime
    status: QuotationStatus
    notes: str
    hall_owner_id: UUID
    created_by: UUID
    booking_id: UUID | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ---------------------------------------------------------------------------
# Invoices & payments
# ---------------------------------------------------------------------------


class InvoiceCreate(BaseModel):
    booking_id: UUID
    invoice_type: InvoiceType
    amount: Decimal = Field(gt=0, decimal_places=2)
    description: str | None = None
    due_date: datetime | None = None
    notes: str | None = None


class InvoiceStatusUpdate(BaseModel):
    status: InvoiceStatus


class PaymentCreate(BaseModel):
    amount: Decimal = Field(decimal_places=2)
    payment_method: str | None = None
    reference: str | None = None
    notes: str | None = None

    @field_validator("amount", mode="after")
    @classmethod
    def positive(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError("Payment amount must be greater than 0")
        return v


class InvoiceResponse(BaseModel):
    id: UUID
    invoice_number: str
    booking_id: UUID
    invoice_type: InvoiceType
    customer: dict[str, Any]
    hall_owner_id: UUID
    resource: str
    issue_date: datetime
    due_date: datetime
    subtotal: Decimal
    gst: Decimal
    total: Decimal
    paid_amount: Decimal
    status: InvoiceStatus
    description: str
    line_items: list[dict[str, Any]]
    notes: str
    sent_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PaymentResult(BaseModel):
    payment_id: UUID
    invoice_id: UUID
    new_paid_amount: Decimal
    new_status: InvoiceStatus


# ---------------------------------------------------------------------------
# Resources & rate cards
# ---------------------------------------------------------------------------


class ResourceCreate(BaseModel):
    name: str
    description: str | None = None
    capacity: int | None = Field(default=None, ge=0)

    @field_validator("name", mode="after")
    @classmethod
    def require_text(cls, v: str) -> str:
        return _required_text(v)


class ResourceResponse(BaseModel):
    id: UUID
    hall_owner_id: UUID
    name: str
    description: str | None = None
    capacity: int | None = None

    model_config = ConfigDict(from_attributes=True)


class RateCardUpsert(BaseModel):
    rate_type: RateType
    weekday_rate: Decimal = Field(ge=0)
    weekend_rate: Decimal = Field(ge=0)


class RateCardResponse(BaseModel):
    hall_owner_id: UUID
    resource_id: UUID
    rate_type: RateType
    weekday_rate: Decimal
    weekend_rate: Decimal
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
