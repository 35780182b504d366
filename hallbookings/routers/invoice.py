from uuid import UUID

from fastapi import APIRouter, Depends, Request, Response, status

from hallbookings import audit
from hallbookings.access import Actor, resolve_effective_owner
from hallbookings.crud import booking_crud, invoice_crud
from hallbookings.deps import client_ip, get_actor, get_mailer
from hallbookings.errors import NotFoundError
from hallbookings.models import InvoiceStatus
from hallbookings.notifications import Mailer
from hallbookings.outbox import SideEffects, get_side_effects
from hallbookings.pdf import render_invoice_pdf
from hallbookings.schemas import (
    InvoiceCreate,
    InvoiceResponse,
    InvoiceStatusUpdate,
    PaymentCreate,
    PaymentResult,
)

router = APIRouter(prefix="/invoices", tags=["invoices"])


async def _get_accessible(invoice_id: UUID, actor: Actor) -> InvoiceResponse:
    invoice = await invoice_crud.get_invoice(invoice_id)
    if not invoice:
        raise NotFoundError("Invoice not found")
    resolve_effective_owner(actor, invoice.hall_owner_id)
    return invoice


async def _email_invoice(mailer: Mailer, invoice: InvoiceResponse) -> None:
    pdf = render_invoice_pdf(invoice)
    await mailer.send_invoice(invoice, pdf)


@router.post("/", response_model=InvoiceResponse, status_code=status.HTTP_201_CREATED)
async def create_invoice(
    payload: InvoiceCreate,
    request: Request,
    actor: Actor = Depends(get_actor),
    side_effects: SideEffects = Depends(get_side_effects),
) -> InvoiceResponse:
    booking = await booking_crud.get_booking(payload.booking_id)
    if not booking:
        raise NotFoundError("Booking not found")
    resolve_effective_owner(actor, booking.hall_owner_id)

    invoice = await invoice_crud.create_invoice(payload, booking)
    await side_effects.run(
        "audit:invoice_created",
        audit.invoice_created(actor, invoice, client_ip(request)),
    )
    return invoice


@router.get("/hall-owner/{hall_owner_id}", response_model=list[InvoiceResponse])
async def list_owner_invoices(
    hall_owner_id: UUID,
    actor: Actor = Depends(get_actor),
) -> list[InvoiceResponse]:
    owner_id = resolve_effective_owner(actor, hall_owner_id)
    return await invoice_crud.list_for_owner(owner_id)


@router.get("/{invoice_id}", response_model=InvoiceResponse)
async def get_invoice(
    invoice_id: UUID,
    actor: Actor = Depends(get_actor),
) -> InvoiceResponse:
    return await _get_accessible(invoice_id, actor)


@router.put("/{invoice_id}/status", response_model=InvoiceResponse)
async def update_invoice_status(
    invoice_id: UUID,
    payload: InvoiceStatusUpdate,
    request: Request,
    actor: Actor = Depends(get_actor),
    mailer: Mailer = Depends(get_mailer),
    side_effects: SideEffects = Depends(get_side_effects),
) -> InvoiceResponse:
    invoice = await _get_accessible(invoice_id, actor)

    updated = await invoice_crud.update_status(invoice_id, payload.status)
    if not updated:
        raise NotFoundError("Invoice not found")

    if updated.status == InvoiceStatus.SENT and invoice.status != InvoiceStatus.SENT:
        await side_effects.run("email:invoice", _email_invoice(mailer, updated))

    await side_effects.run(
        "audit:invoice_status",
        audit.invoice_updated(
            actor, invoice.model_dump(), updated.model_dump(), client_ip(request)
        ),
    )
    return updated


@router.put("/{invoice_id}/payment", response_model=PaymentResult)
async def record_payment(
    invoice_id: UUID,
    payload: PaymentCreate,
    request: Request,
    actor: Actor = Depends(get_actor),
    side_effects: SideEffects = Depends(get_side_effects),
) -> PaymentResult:
    invoice = await _get_accessible(invoice_id, actor)

    result = await invoice_crud.record_payment(invoice_id, payload, processed_by=actor.id)
    if result is None:
        raise NotFoundError("Invoice not found")

    await side_effects.run(
        "audit:payment_recorded",
        audit.payment_recorded(actor, invoice, result, payload, client_ip(request)),
    )
    return result


@router.get("/{invoice_id}/pdf")
async def get_invoice_pdf(
    invoice_id: UUID,
    actor: Actor = Depends(get_actor),
) -> Response:
    invoice = await _get_accessible(invoice_id, actor)
    return Response(
        content=render_invoice_pdf(invoice),
        media_type="application/pdf",
        headers={
            "Content-Disposition": f'attachment; filename="invoice-{invoice.invoice_number}.pdf"'
        },
    )
