from datetime import UTC, date, datetime
from decimal import Decimal
from enum import StrEnum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, DateTime, Enum, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from hallbookings.db import Base


class UserRole(StrEnum):
    HALL_OWNER = "hall_owner"
    SUB_USER = "sub_user"  # acts on behalf of parent_user_id
    SUPER_ADMIN = "super_admin"
    CUSTOMER = "customer"


class BookingStatus(StrEnum):
    PENDING = "pending"  # submitted by a customer, awaiting the hall owner
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


ACTIVE_BOOKING_STATUSES = [BookingStatus.PENDING, BookingStatus.CONFIRMED]


class BookingSource(StrEnum):
    DIRECT = "direct"
    QUOTATION = "quotation"


class RateType(StrEnum):
    HOURLY = "hourly"
    DAILY = "daily"


class QuotationStatus(StrEnum):
    DRAFT = "Draft"
    SENT = "Sent"
    ACCEPTED = "Accepted"
    DECLINED = "Declined"
    EXPIRED = "Expired"


class InvoiceType(StrEnum):
    DEPOSIT = "DEPOSIT"
    FINAL = "FINAL"
    BOND = "BOND"
    ADD_ONS = "ADD-ONS"


class InvoiceStatus(StrEnum):
    DRAFT = "DRAFT"
    SENT = "SENT"
    PARTIAL = "PARTIAL"
    PAID = "PAID"
    OVERDUE = "OVERDUE"
    VOID = "VOID"
    REFUNDED = "REFUNDED"


# An invoice in one of these blocks another of the same type for the booking
OPEN_INVOICE_STATUSES = [
    InvoiceStatus.DRAFT,
    InvoiceStatus.SENT,
    InvoiceStatus.PARTIAL,
    InvoiceStatus.PAID,
]



def _now() -> datetime:
    return datetime.now(UTC)


def _enum(enum_cls: type[StrEnum]) -> Enum:
    """Store enum values (not member names) in a plain VARCHAR column."""
    return Enum(
        enum_cls,
        native_enum=False,
        length=32,
        values_callable=lambda members: [m.value for m in members],
    )


def _money(**kwargs: Any) -> Any:
    return mapped_column(Numeric(10, 2), **kwargs)


class AbstractModel(Base):
    __abstract__ = True

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now)


class User(AbstractModel):
    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(255), unique=True)
    role: Mapped[UserRole] = mapped_column(_enum(UserRole))
    parent_user_id: Mapped[UUID | None]  # required for sub_user

    name: Mapped[str | None] = mapped_column(String(255))
    business_name: Mapped[str | None] = mapped_column(String(255))
    profile: Mapped[dict | None] = mapped_column(JSON)  # legacy rows nest fields under owner_profile


class Resource(AbstractModel):
    __tablename__ = "resources"

    hall_owner_id: Mapped[UUID] = mapped_column(index=True)
    name: Mapped[str] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(Text)
    capacity: Mapped[int | None]


class RateCard(AbstractModel):
    __tablename__ = "pricing"
    __table_args__ = (UniqueConstraint("hall_owner_id", "resource_id"),)

    hall_owner_id: Mapped[UUID]
    resource_id: Mapped[UUID] = mapped_column(index=True)
    rate_type: Mapped[RateType] = mapped_column(_enum(RateType))
    weekday_rate: Mapped[Decimal] = _money()
    weekend_rate: Mapped[Decimal] = _money()
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_now, onupdate=_now
    )


class Booking(AbstractModel):
    __tablename__ = "bookings"

    customer_name: Mapped[str] = mapped_column(String(255))
    customer_email: Mapped[str] = mapped_column(String(255))
    customer_phone: Mapped[str] = mapped_column(String(32))
    event_type: Mapped[str] = mapped_column(String(255))

    hall_id: Mapped[UUID]
    hall_owner_id: Mapped[UUID] = mapped_column(index=True)
    hall_name: Mapped[str] = mapped_column(String(255))  # snapshot of resource name

    booking_date: Mapped[date] = mapped_column(index=True)
    start_time: Mapped[str] = mapped_column(String(5))  # HH:MM
    end_time: Mapped[str] = mapped_column(String(5))  # HH:MM, exclusive
    additional_description: Mapped[str] = mapped_column(Text, default="")
    guest_count: Mapped[int | None]

    status: Mapped[BookingStatus] = mapped_column(
        _enum(BookingStatus), default=BookingStatus.PENDING
    )

    calculated_price: Mapped[Decimal] = _money(default=Decimal("0"))
    price_details: Mapped[dict | None] = mapped_column(JSON)  # rate snapshot at pricing time
    price_notes: Mapped[str | None] = mapped_column(Text)

    booking_source: Mapped[BookingSource] = mapped_column(
        _enum(BookingSource), default=BookingSource.DIRECT
    )
    quotation_id: Mapped[UUID | None]

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_now, onupdate=_now
    )


class Quotation(AbstractModel):
    __tablename__ = "quotations"

    quotation_number: Mapped[str] = mapped_column(String(16), unique=True)

    customer_name: Mapped[str] = mapped_column(String(255))
    customer_email: Mapped[str] = mapped_column(String(255))
    customer_phone: Mapped[str] = mapped_column(String(32))
    event_type: Mapped[str] = mapped_column(String(255))

    resource_id: Mapped[UUID]
    resource_name: Mapped[str] = mapped_column(String(255))
    event_date: Mapped[date]
    start_time: Mapped[str] = mapped_column(String(5))
    end_time: Mapped[str] = mapped_column(String(5))
    guest_count: Mapped[int | None]

    total_amount: Mapped[Decimal] = _money()
    valid_until: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    status: Mapped[QuotationStatus] = mapped_column(
        _enum(QuotationStatus), default=QuotationStatus.DRAFT
    )
    notes: Mapped[str] = mapped_column(Text, default="")

    hall_owner_id: Mapped[UUID] = mapped_column(index=True)
    created_by: Mapped[UUID]
    booking_id: Mapped[UUID | None]  # set once accepted

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_now, onupdate=_now
    )


class Invoice(AbstractModel):
    __tablename__ = "invoices"

    invoice_number: Mapped[str] = mapped_column(String(20), unique=True)
    booking_id: Mapped[UUID] = mapped_column(index=True)
    invoice_type: Mapped[InvoiceType] = mapped_column(_enum(InvoiceType))

    customer: Mapped[dict] = mapped_column(JSON)  # name / email / phone / abn snapshot
    hall_owner_id: Mapped[UUID] = mapped_column(index=True)
    resource: Mapped[str] = mapped_column(String(255), default="")

    issue_date: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    due_date: Mapped[datetime] = mapped_column(DateTime(timezone=True))

    subtotal: Mapped[Decimal] = _money()
    gst: Mapped[Decimal] = _money()
    total: Mapped[Decimal] = _money()
    paid_amount: Mapped[Decimal] = _money(default=Decimal("0"))

    status: Mapped[InvoiceStatus] = mapped_column(
        _enum(InvoiceStatus), default=InvoiceStatus.DRAFT
    )
    description: Mapped[str] = mapped_column(Text, default="")
    line_items: Mapped[list] = mapped_column(JSON, default=list)
    notes: Mapped[str] = mapped_column(Text, default="")
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_now, onupdate=_now
    )


class Payment(AbstractModel):
    __tablename__ = "payments"

    invoice_id: Mapped[UUID] = mapped_column(index=True)
    invoice_number: Mapped[str] = mapped_column(String(20))
    booking_id: Mapped[UUID]
    hall_owner_id: Mapped[UUID]

    amount: Mapped[Decimal] = _money()
    payment_method: Mapped[str] = mapped_column(String(64), default="Bank Transfer")
    reference: Mapped[str] = mapped_column(String(255), default="")
    notes: Mapped[str] = mapped_column(Text, default="")

    processed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now)
    processed_by: Mapped[UUID]


class AuditLog(AbstractModel):
    __tablename__ = "audit_logs"

    user_id: Mapped[UUID | None]
    user_email: Mapped[str | None] = mapped_column(String(255))
    user_role: Mapped[str | None] = mapped_column(String(32))

    action: Mapped[str] = mapped_column(String(64))  # e.g. booking_created
    target_type: Mapped[str] = mapped_column(String(32))
    target: Mapped[str] = mapped_column(String(255))
    changes: Mapped[dict] = mapped_column(JSON, default=dict)

    ip_address: Mapped[str | None] = mapped_column(String(64))
    hall_id: Mapped[UUID | None]
    additional_info: Mapped[str] = mapped_column(Text, default="")
