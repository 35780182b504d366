"""Audit trail writers. Call them through SideEffects.run so a failed write never blocks a request."""

from __future__ import annotations

from typing import Any
from uuid import UUID

from fastapi.encoders import jsonable_encoder
from loguru import logger

from hallbookings.access import Actor
from hallbookings.db import transaction
from hallbookings.models import AuditLog


def diff(old: dict[str, Any], new: dict[str, Any]) -> dict[str, Any]:
    """{field: {"old": ..., "new": ...}} for every field whose value changed."""
    old_json = jsonable_encoder(old)
    new_json = jsonable_encoder(new)
    return {
        key: {"old": old_json.get(key), "new": value}
        for key, value in new_json.items()
        if old_json.get(key) != value
    }


async def log_event(
    *,
    actor: Actor | None,
    action: str,
    target_type: str,
    target: str,
    changes: dict[str, Any] | None = None,
    ip_address: str | None = None,
    hall_id: UUID | None = None,
    additional_info: str = "",
) -> AuditLog:
    entry = AuditLog(
        user_id=actor.id if actor else None,
        user_email=actor.email if actor else None,
        user_role=str(actor.role) if actor else None,
        action=action,
        target_type=target_type,
        target=target,
        changes=jsonable_encoder(changes or {}),
        ip_address=ip_address,
        hall_id=hall_id,
        additional_info=additional_info,
    )
    async with transaction() as session:
        session.add(entry)
    logger.info("Audit log created: {} by {} on {}", action, entry.user_email, target)
    return entry


async def booking_created(
    actor: Actor | None, booking: Any, ip_address: str | None, source: str = "direct"
) -> AuditLog:
    return await log_event(
        actor=actor,
        action="booking_created",
        target_type="booking",
        target=f"Booking: {booking.customer_name} - {booking.booking_date}",
        changes={
            "new": {
                "id": booking.id,
                "status": booking.status,
                "calculated_price": booking.calculated_price,
                "source": source,
            }
        },
        ip_address=ip_address,
        hall_id=booking.hall_owner_id,
        additional_info=f"Booking created ({source})",
    )


async def booking_updated(
    actor: Actor, old: dict[str, Any], new: dict[str, Any], ip_address: str | None
) -> AuditLog:
    return await log_event(
        actor=actor,
        action="booking_updated",
        target_type="booking",
        target=f"Booking: {new.get('customer_name')} - {new.get('booking_date')}",
        changes=diff(old, new),
        ip_address=ip_address,
        hall_id=new.get("hall_owner_id"),
    )


async def quotation_created(actor: Actor, quotation: Any, ip_address: str | None) -> AuditLog:
    return await log_event(
        actor=actor,
        action="quotation_created",
        target_type="quotation",
        target=f"Quotation: {quotation.quotation_number} - {quotation.customer_name}",
        changes={
            "new": {
                "id": quotation.id,
                "quotation_number": quotation.quotation_number,
                "event_type": quotation.event_type,
                "total_amount": quotation.total_amount,
            }
        },
        ip_address=ip_address,
        hall_id=quotation.hall_owner_id,
    )


async def quotation_updated(
    actor: Actor, old: dict[str, Any], new: dict[str, Any], ip_address: str | None
) -> AuditLog:
    return await log_event(
        actor=actor,
        action="quotation_updated",
        target_type="quotation",
        target=f"Quotation: {new.get('quotation_number')}",
        changes=diff(old, new),
        ip_address=ip_address,
        hall_id=new.get("hall_owner_id"),
    )


async def invoice_created(actor: Actor, invoice: Any, ip_address: str | None) -> AuditLog:
    return await log_event(
        actor=actor,
        action="invoice_created",
        target_type="invoice",
        target=f"Invoice: {invoice.invoice_number}",
        changes={
            "new": {
                "id": invoice.id,
                "booking_id": invoice.booking_id,
                "invoice_type": invoice.invoice_type,
                "total": invoice.total,
            }
        },
        ip_address=ip_address,
        hall_id=invoice.hall_owner_id,
    )


async def invoice_updated(
    actor: Actor, old: dict[str, Any], new: dict[str, Any], ip_address: str | None
) -> AuditLog:
    return await log_event(
        actor=actor,
        action="invoice_updated",
        target_type="invoice",
        target=f"Invoice: {new.get('invoice_number')}",
        changes=diff(old, new),
        ip_address=ip_address,
        hall_id=new.get("hall_owner_id"),
    )


async def payment_recorded(
    actor: Actor, invoice: Any, result: Any, payment: Any, ip_address: str | None
) -> AuditLog:
    return await log_event(
        actor=actor,
        action="payment_recorded",
        target_type="payment",
        target=f"Payment for invoice {invoice.invoice_number}",
        changes={
            "new": {
                "id": result.payment_id,
                "invoice_id": result.invoice_id,
                "amount": payment.amount,
                "payment_method": payment.payment_method or "Bank Transfer",
                "paid_amount": result.new_paid_amount,
                "status": result.new_status,
            }
        },
        ip_address=ip_address,
        hall_id=invoice.hall_owner_id,
    )


async def pricing_updated(
    actor: Actor, old: dict[str, Any], new: dict[str, Any], ip_address: str | None
) -> AuditLog:
    return await log_event(
        actor=actor,
        action="pricing_updated",
        target_type="pricing",
        target=f"Pricing for resource {new.get('resource_id')}",
        changes=diff(old, new),
        ip_address=ip_address,
        hall_id=new.get("hall_owner_id"),
    )


async def resource_created(actor: Actor, resource: Any, ip_address: str | None) -> AuditLog:
    return await log_event(
        actor=actor,
        action="resource_created",
        target_type="resource",
        target=f"Resource: {resource.name}",
        changes={"new": {"id": resource.id, "name": resource.name}},
        ip_address=ip_address,
        hall_id=resource.hall_owner_id,
    )
