from __future__ import annotations

import asyncio
import random
import time
from datetime import UTC, date, datetime, timedelta
from decimal import Decimal
from typing import Any
from uuid import UUID

from loguru import logger
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from hallbookings.db import transaction
from hallbookings.errors import ConflictError, NotFoundError
from hallbookings.log import booking_log, payment_log
from hallbookings.models import (
    ACTIVE_BOOKING_STATUSES,
    OPEN_INVOICE_STATUSES,
    Booking,
    BookingSource,
    BookingStatus,
    Invoice,
    InvoiceStatus,
    Payment,
    Quotation,
    QuotationStatus,
    RateCard,
    Resource,
    User,
)
from hallbookings.pricing import NO_PRICE, PriceQuote, compute_price, gst, money
from hallbookings.schemas import (
    BookingCreate,
    BookingPriceUpdate,
    BookingResponse,
    ConflictingSlot,
    InvoiceCreate,
    InvoiceResponse,
    PaymentCreate,
    PaymentResult,
    QuotationCreate,
    QuotationResponse,
    RateCardResponse,
    RateCardUpsert,
    ResourceCreate,
    ResourceResponse,
    UnavailableDates,
    UnavailableFilters,
    UnavailableSlot,
)
from hallbookings.slots import find_conflict, invoice_locks, slot_locks

NUMBER_ATTEMPTS = 5
QUOTATION_VALIDITY = timedelta(days=14)
INVOICE_TERMS = timedelta(days=30)

SLOT_TAKEN = "Time slot is already booked. Please choose a different time."

# legacy profile keys -> User columns
_OWNER_PROFILE_FIELDS = {
    "name": "name",
    "businessName": "business_name",
    "business_name": "business_name",
}


def _quotation_number() -> str:
    return f"QUO-{time.time_ns() // 1_000_000 % 1_000_000:06d}"


def _invoice_number(now: datetime) -> str:
    return f"INV-{now:%Y%m}-{random.randint(0, 9999):04d}"


def _slot_key(quotation: Quotation) -> tuple[UUID, UUID, date]:
    return (quotation.hall_owner_id, quotation.resource_id, quotation.event_date)


def _conflict_payload(booking: Booking) -> dict[str, Any]:
    return ConflictingSlot(
        start_time=booking.start_time,
        end_time=booking.end_time,
        customer_name=booking.customer_name,
    ).model_dump()


async def _active_bookings(
    session: AsyncSession, hall_owner_id: UUID, hall_id: UUID, booking_date: date
) -> list[Booking]:
    """Active bookings for one slot key, row-locked where the backend supports it."""
    result = await session.scalars(
        select(Booking)
        .where(
            Booking.hall_owner_id == hall_owner_id,
            Booking.hall_id == hall_id,
            Booking.booking_date == booking_date,
            Booking.status.in_(ACTIVE_BOOKING_STATUSES),
        )
        .with_for_update()
    )
    return list(result)


class UserCRUD:
    async def get_user(self, user_id: UUID) -> User | None:
        """
        Fetch a user, lifting legacy `profile["owner_profile"]` fields onto the
        row the first time it is read.
        """
        async with transaction() as session:
            user = await session.get(User, user_id)
            if user is None:
                return None

            legacy = (user.profile or {}).get("owner_profile")
            if isinstance(legacy, dict):
                for key, column in _OWNER_PROFILE_FIELDS.items():
                    if legacy.get(key) and not getattr(user, column):
                        setattr(user, column, legacy[key])
                user.profile = {
                    **{k: v for k, v in user.profile.items() if k != "owner_profile"},
                    **{k: v for k, v in legacy.items() if k not in _OWNER_PROFILE_FIELDS},
                }
                logger.info("Normalized legacy owner profile for user {}", user.id)
        return user


class ResourceCRUD:
    async def get_resource(self, resource_id: UUID) -> ResourceResponse | None:
        async with transaction() as session:
            inst = await session.get(Resource, resource_id)
        if not inst:
            return None
        return ResourceResponse.model_validate(inst, from_attributes=True)

    async def list_for_owner(self, hall_owner_id: UUID) -> list[ResourceResponse]:
        async with transaction() as session:
            resources = await session.scalars(
                select(Resource)
                .where(Resource.hall_owner_id == hall_owner_id)
                .order_by(Resource.name)
            )
            return [
                ResourceResponse.model_validate(r, from_attributes=True) for r in resources
            ]

    async def create_resource(
        self, hall_owner_id: UUID, payload: ResourceCreate
    ) -> ResourceResponse:
        inst = Resource(hall_owner_id=hall_owner_id, **payload.model_dump())
        async with transaction() as session:
            session.add(inst)
        return ResourceResponse.model_validate(inst, from_attributes=True)


class PricingCRUD:
    async def get_rate_card(self, resource_id: UUID) -> RateCardResponse | None:
        async with transaction() as session:
            inst = await session.scalar(
                select(RateCard).where(RateCard.resource_id == resource_id)
            )
        if not inst:
            return None
        return RateCardResponse.model_validate(inst, from_attributes=True)

    async def upsert_rate_card(
        self, hall_owner_id: UUID, resource_id: UUID, payload: RateCardUpsert
    ) -> tuple[RateCardResponse | None, RateCardResponse]:
        """Returns (previous, current)."""
        async with transaction() as session:
            inst = await session.scalar(
                select(RateCard)
                .where(
                    RateCard.hall_owner_id == hall_owner_id,
                    RateCard.resource_id == resource_id,
                )
                .with_for_update()
            )
            previous = None
            if inst is None:
                inst = RateCard(
                    hall_owner_id=hall_owner_id,
                    resource_id=resource_id,
                    **payload.model_dump(),
                )
                session.add(inst)
            else:
                previous = RateCardResponse.model_validate(inst, from_attributes=True)
                for key, value in payload.model_dump().items():
                    setattr(inst, key, value)
        return previous, RateCardResponse.model_validate(inst, from_attributes=True)

    async def quote(
        self,
        hall_owner_id: UUID,
        resource_id: UUID,
        booking_date: date,
        start_time: str,
        end_time: str,
        estimated_price: Any | None = None,
    ) -> PriceQuote:
        """Best-effort price; any failure is logged and yields NO_PRICE."""
        try:
            async with transaction() as session:
                card = await session.scalar(
                    select(RateCard).where(
                        RateCard.hall_owner_id == hall_owner_id,
                        RateCard.resource_id == resource_id,
                    )
                )
            if card is None:
                return NO_PRICE
            return compute_price(card, booking_date, start_time, end_time, estimated_price)
        except Exception:
            logger.warning(
                "Price calculation failed for resource {}", resource_id, exc_info=True
            )
            return NO_PRICE


class BookingCRUD:
    async def create_booking(
        self, payload: BookingCreate, hall_name: str
    ) -> BookingResponse:
        """
        Persist a pending booking after re-checking the slot.

        The conflict scan and insert run under the per-slot lock and inside one
        transaction, so two requests for the same slot cannot both succeed.
        """
        price = await pricing_crud.quote(
            payload.hall_owner_id,
            payload.hall_id,
            payload.booking_date,
            payload.start_time,
            payload.end_time,
            payload.estimated_price,
        )

        key = (payload.hall_owner_id, payload.hall_id, payload.booking_date)
        async with slot_locks.hold(key):
            async with transaction() as session:
                existing = await _active_bookings(session, *key)
                clash = find_conflict(existing, payload.start_time, payload.end_time)
                if clash is not None:
                    raise ConflictError(
                        SLOT_TAKEN, conflicting_booking=_conflict_payload(clash)
                    )

                inst = Booking(
                    customer_name=payload.customer_name,
                    customer_email=payload.customer_email,
                    customer_phone=payload.customer_phone,
                    event_type=payload.event_type,
                    hall_id=payload.hall_id,
                    hall_owner_id=payload.hall_owner_id,
                    hall_name=hall_name,
                    booking_date=payload.booking_date,
                    start_time=payload.start_time,
                    end_time=payload.end_time,
                    additional_description=payload.additional_description or "",
                    status=BookingStatus.PENDING,
                    calculated_price=price.amount,
                    price_details=price.details,
                    booking_source=BookingSource.DIRECT,
                )
                session.add(inst)

        booking_log.info(
            "Booking {} created for hall {} on {} {}-{} (price {})",
            inst.id,
            inst.hall_id,
            inst.booking_date,
            inst.start_time,
            inst.end_time,
            inst.calculated_price,
        )
        return BookingResponse.model_validate(inst, from_attributes=True)

    async def get_booking(self, booking_id: UUID) -> BookingResponse | None:
        async with transaction() as session:
            inst = await session.get(Booking, booking_id)
        if not inst:
            return None
        return BookingResponse.model_validate(inst, from_attributes=True)

    async def list_for_owner(self, hall_owner_id: UUID) -> list[BookingResponse]:
        async with transaction() as session:
            bookings = await session.scalars(
                select(Booking)
                .where(Booking.hall_owner_id == hall_owner_id)
                .order_by(Booking.created_at.desc())
            )
            return [BookingResponse.model_validate(b, from_attributes=True) for b in bookings]

    async def update_status(
        self, booking_id: UUID, status: BookingStatus
    ) -> BookingResponse | None:
        async with transaction() as session:
            inst = await session.get(Booking, booking_id, with_for_update=True)
            if not inst:
                return None
            inst.status = status
        booking_log.info("Booking {} status -> {}", inst.id, status)
        return BookingResponse.model_validate(inst, from_attributes=True)

    async def update_price(
        self, booking_id: UUID, payload: BookingPriceUpdate
    ) -> BookingResponse | None:
        async with transaction() as session:
            inst = await session.get(Booking, booking_id, with_for_update=True)
            if not inst:
                return None
            if payload.calculated_price is not None:
                inst.calculated_price = money(payload.calculated_price)
            if payload.price_details is not None:
                inst.price_details = payload.price_details
            if payload.notes is not None:
                inst.price_notes = payload.notes
        return BookingResponse.model_validate(inst, from_attributes=True)

    async def unavailable_dates(
        self, hall_owner_id: UUID, filters: UnavailableFilters
    ) -> UnavailableDates:
        """Active bookings grouped as {booking_date: {hall_id: [slot, ...]}}."""
        stmt = select(Booking).where(
            Booking.hall_owner_id == hall_owner_id,
            Booking.status.in_(ACTIVE_BOOKING_STATUSES),
        )
        if filters.resource_id is not None:
            stmt = stmt.where(Booking.hall_id == filters.resource_id)
        if filters.start_date is not None:
            stmt = stmt.where(Booking.booking_date >= filters.start_date)
        if filters.end_date is not None:
            stmt = stmt.where(Booking.booking_date <= filters.end_date)

        async with transaction() as session:
            bookings = list(
                await session.scalars(stmt.order_by(Booking.booking_date, Booking.start_time))
            )

        grouped: dict[str, dict[str, list[UnavailableSlot]]] = {}
        for b in bookings:
            by_hall = grouped.setdefault(b.booking_date.isoformat(), {})
            by_hall.setdefault(str(b.hall_id), []).append(
                UnavailableSlot(
                    booking_id=b.id,
                    start_time=b.start_time,
                    end_time=b.end_time,
                    customer_name=b.customer_name,
                    event_type=b.event_type,
                    status=b.status,
                )
            )
        return UnavailableDates(unavailable_dates=grouped, total_bookings=len(bookings))


class QuotationCRUD:
    async def create_quotation(
        self,
        payload: QuotationCreate,
        hall_owner_id: UUID,
        created_by: UUID,
        resource_name: str,
    ) -> QuotationResponse:
        data = payload.model_dump()
        data["valid_until"] = data["valid_until"] or datetime.now(UTC) + QUOTATION_VALIDITY
        data["notes"] = data["notes"] or ""

        for attempt in range(1, NUMBER_ATTEMPTS + 1):
            inst = Quotation(
                quotation_number=_quotation_number(),
                resource_name=resource_name,
                hall_owner_id=hall_owner_id,
                created_by=created_by,
                status=QuotationStatus.DRAFT,
                **data,
            )
            try:
                async with transaction() as session:
                    session.add(inst)
                break
            except IntegrityError:
                if attempt == NUMBER_ATTEMPTS:
                    raise
                logger.debug("Quotation number collision, retrying ({})", attempt)
                await asyncio.sleep(0.001)

        logger.info("Quotation {} created for owner {}", inst.quotation_number, hall_owner_id)
        return QuotationResponse.model_validate(inst, from_attributes=True)

    async def get_quotation(self, quotation_id: UUID) -> QuotationResponse | None:
        async with transaction() as session:
            inst = await session.get(Quotation, quotation_id)
        if not inst:
            return None
        return QuotationResponse.model_validate(inst, from_attributes=True)

    async def list_for_owner(self, hall_owner_id: UUID) -> list[QuotationResponse]:
        async with transaction() as session:
            quotations = await session.scalars(
                select(Quotation)
                .where(Quotation.hall_owner_id == hall_owner_id)
                .order_by(Quotation.created_at.desc())
            )
            return [
                QuotationResponse.model_validate(q, from_attributes=True) for q in quotations
            ]

    async def update_quotation(
        self, quotation_id: UUID, changes: dict[str, Any]
    ) -> QuotationResponse | None:
        async with transaction() as session:
            inst = await session.get(Quotation, quotation_id, with_for_update=True)
            if not inst:
                return None
            for key, value in changes.items():
                setattr(inst, key, value)
        return QuotationResponse.model_validate(inst, from_attributes=True)

    async def delete_quotation(self, quotation_id: UUID) -> bool:
        async with transaction() as session:
            result = await session.execute(delete(Quotation).where(Quotation.id == quotation_id))
        return result.rowcount > 0

    async def set_status(
        self, quotation_id: UUID, status: QuotationStatus
    ) -> QuotationResponse | None:
        """Plain status write; acceptance goes through `accept`."""
        async with transaction() as session:
            inst = await session.get(Quotation, quotation_id, with_for_update=True)
            if not inst:
                return None
            inst.status = status
        return QuotationResponse.model_validate(inst, from_attributes=True)

    async def _convert(
        self, session: AsyncSession, inst: Quotation
    ) -> tuple[Booking, bool]:
        """Book the quotation's slot inside the caller's transaction and lock."""
        if inst.booking_id is not None:
            booking = await session.get(Booking, inst.booking_id)
            if booking is None:
                raise NotFoundError("Booking not found")
            inst.status = QuotationStatus.ACCEPTED
            created = False
        else:
            existing = await _active_bookings(
                session, inst.hall_owner_id, inst.resource_id, inst.event_date
            )
            clash = find_conflict(existing, inst.start_time, inst.end_time)
            if clash is not None:
                raise ConflictError(
                    SLOT_TAKEN, conflicting_booking=_conflict_payload(clash)
                )

            booking = Booking(
                customer_name=inst.customer_name,
                customer_email=inst.customer_email,
                customer_phone=inst.customer_phone,
                event_type=inst.event_type,
                hall_id=inst.resource_id,
                hall_owner_id=inst.hall_owner_id,
                hall_name=inst.resource_name,
                booking_date=inst.event_date,
                start_time=inst.start_time,
                end_time=inst.end_time,
                additional_description=inst.notes,
                guest_count=inst.guest_count,
                status=BookingStatus.CONFIRMED,
                calculated_price=inst.total_amount,
                price_details={
                    "quotation_id": str(inst.id),
                    "source": "quotation_accepted",
                },
                booking_source=BookingSource.QUOTATION,
                quotation_id=inst.id,
            )
            session.add(booking)
            await session.flush()
            inst.status = QuotationStatus.ACCEPTED
            inst.booking_id = booking.id
            created = True
        return booking, created

    async def accept(
        self, quotation: QuotationResponse
    ) -> tuple[QuotationResponse, BookingResponse, bool]:
        """
        Convert a quotation into a confirmed booking.

        Returns (quotation, booking, created). A quotation that already carries
        a booking_id keeps it and `created` is False. On a slot conflict nothing
        is written.
        """
        for _ in range(NUMBER_ATTEMPTS):
            async with transaction() as session:
                current = await session.get(Quotation, quotation.id)
            if current is None:
                raise NotFoundError("Quotation not found")

            # lock the slot the row names now, not the caller's copy
            key = _slot_key(current)
            async with slot_locks.hold(key):
                async with transaction() as session:
                    inst = await session.get(Quotation, quotation.id, with_for_update=True)
                    if inst is None:
                        raise NotFoundError("Quotation not found")
                    if _slot_key(inst) != key:
                        logger.debug("Quotation {} moved slot before accept, retrying", inst.id)
                        continue
                    booking, created = await self._convert(session, inst)
            break
        else:
            raise ConflictError("Quotation is being changed, please try again")

        if created:
            booking_log.info(
                "Quotation {} accepted, booking {} created", inst.quotation_number, booking.id
            )
        return (
            QuotationResponse.model_validate(inst, from_attributes=True),
            BookingResponse.model_validate(booking, from_attributes=True),
            created,
        )


class InvoiceCRUD:
    async def create_invoice(
        self, payload: InvoiceCreate, booking: BookingResponse
    ) -> InvoiceResponse:
        """
        One active invoice per (booking, type). The duplicate check and insert
        share a lock on that pair.
        """
        subtotal = money(payload.amount)
        tax = gst(subtotal)
        now = datetime.now(UTC)
        description = payload.description or f"{payload.invoice_type} payment for {booking.event_type}"
        line_items = [
            {
                "description": description,
                "quantity": 1,
                "unit_price": float(subtotal),
                "gst": float(tax),
                "total": float(subtotal + tax),
            }
        ]

        async with invoice_locks.hold((booking.id, payload.invoice_type)):
            async with transaction() as session:
                duplicate = await session.scalar(
                    select(Invoice.id).where(
                        Invoice.booking_id == booking.id,
                        Invoice.invoice_type == payload.invoice_type,
                        Invoice.status.in_(OPEN_INVOICE_STATUSES),
                    )
                )
            if duplicate is not None:
                raise ConflictError(
                    f"Invoice of type {payload.invoice_type} already exists for this booking"
                )

            for attempt in range(1, NUMBER_ATTEMPTS + 1):
                inst = Invoice(
                    invoice_number=_invoice_number(now),
                    booking_id=booking.id,
                    invoice_type=payload.invoice_type,
                    customer={
                        "name": booking.customer_name,
                        "email": booking.customer_email,
                        "phone": booking.customer_phone,
                        "abn": "",
                    },
                    hall_owner_id=booking.hall_owner_id,
                    resource=booking.hall_name,
                    issue_date=now,
                    due_date=payload.due_date or now + INVOICE_TERMS,
                    subtotal=subtotal,
                    gst=tax,
                    total=subtotal + tax,
                    paid_amount=Decimal("0"),
                    status=InvoiceStatus.DRAFT,
                    description=description,
                    line_items=line_items,
                    notes=payload.notes or "",
                )
                try:
                    async with transaction() as session:
                        session.add(inst)
                    break
                except IntegrityError:
                    if attempt == NUMBER_ATTEMPTS:
                        raise
                    logger.debug("Invoice number collision, retrying ({})", attempt)

        payment_log.info(
            "Invoice {} ({}) created for booking {}: total {}",
            inst.invoice_number,
            inst.invoice_type,
            booking.id,
            inst.total,
        )
        return InvoiceResponse.model_validate(inst, from_attributes=True)

    async def get_invoice(self, invoice_id: UUID) -> InvoiceResponse | None:
        async with transaction() as session:
            inst = await session.get(Invoice, invoice_id)
        if not inst:
            return None
        return InvoiceResponse.model_validate(inst, from_attributes=True)

    async def list_for_owner(self, hall_owner_id: UUID) -> list[InvoiceResponse]:
        async with transaction() as session:
            invoices = await session.scalars(
                select(Invoice)
                .where(Invoice.hall_owner_id == hall_owner_id)
                .order_by(Invoice.created_at.desc())
            )
            return [InvoiceResponse.model_validate(i, from_attributes=True) for i in invoices]

    async def update_status(
        self, invoice_id: UUID, status: InvoiceStatus
    ) -> InvoiceResponse | None:
        """sent_at is stamped only when the invoice enters SENT from another state."""
        async with transaction() as session:
            inst = await session.get(Invoice, invoice_id, with_for_update=True)
            if not inst:
                return None
            if status == InvoiceStatus.SENT and inst.status != InvoiceStatus.SENT:
                inst.sent_at = datetime.now(UTC)
            inst.status = status
        return InvoiceResponse.model_validate(inst, from_attributes=True)

    async def record_payment(
        self, invoice_id: UUID, payload: PaymentCreate, processed_by: UUID
    ) -> PaymentResult | None:
        """
        Row-locked read-modify-write of paid_amount. Overpayment is recorded
        as-is and marks the invoice PAID.
        """
        async with transaction() as session:
            inst = await session.get(Invoice, invoice_id, with_for_update=True)
            if inst is None:
                return None

            new_paid = money(Decimal(inst.paid_amount) + payload.amount)
            if new_paid >= Decimal(inst.total):
                new_status = InvoiceStatus.PAID
            elif new_paid > 0:
                new_status = InvoiceStatus.PARTIAL
            else:
                new_status = inst.status
            inst.paid_amount = new_paid
            inst.status = new_status

            payment = Payment(
                invoice_id=inst.id,
                invoice_number=inst.invoice_number,
                booking_id=inst.booking_id,
                hall_owner_id=inst.hall_owner_id,
                amount=money(payload.amount),
                payment_method=payload.payment_method or "Bank Transfer",
                reference=payload.reference or "",
                notes=payload.notes or "",
                processed_by=processed_by,
            )
            session.add(payment)

        payment_log.info(
            "Payment {} of {} recorded on invoice {}: paid {} of {} -> {}",
            payment.id,
            payment.amount,
            inst.invoice_number,
            new_paid,
            inst.total,
            new_status,
        )
        return PaymentResult(
            payment_id=payment.id,
            invoice_id=inst.id,
            new_paid_amount=new_paid,
            new_status=new_status,
        )


user_crud = UserCRUD()
resource_crud = ResourceCRUD()
pricing_crud = PricingCRUD()
booking_crud = BookingCRUD()
quotation_crud = QuotationCRUD()
invoice_crud = InvoiceCRUD()
