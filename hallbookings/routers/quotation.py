from uuid import UUID

from fastapi import APIRouter, Depends, Request, Response, status

from hallbookings import audit
from hallbookings.access import Actor, resolve_effective_owner
from hallbookings.cache import invalidate_unavailable_cache
from hallbookings.crud import quotation_crud, resource_crud
from hallbookings.deps import client_ip, get_actor, get_mailer
from hallbookings.errors import AccessDeniedError, NotFoundError, ValidationError
from hallbookings.models import QuotationStatus
from hallbookings.notifications import Mailer
from hallbookings.outbox import SideEffects, get_side_effects
from hallbookings.pdf import render_quotation_pdf
from hallbookings.schemas import (
    QuotationCreate,
    QuotationResponse,
    QuotationStatusUpdate,
    QuotationUpdate,
)
from hallbookings.slots import minutes_of_day

router = APIRouter(prefix="/quotations", tags=["quotations"])


async def _get_accessible(quotation_id: UUID, actor: Actor) -> QuotationResponse:
    quotation = await quotation_crud.get_quotation(quotation_id)
    if not quotation:
        raise NotFoundError("Quotation not found")
    resolve_effective_owner(actor, quotation.hall_owner_id)
    return quotation


async def _email_quotation(mailer: Mailer, quotation: QuotationResponse) -> None:
    pdf = render_quotation_pdf(quotation)
    await mailer.send_quotation(quotation, pdf)


@router.post("/", response_model=QuotationResponse, status_code=status.HTTP_201_CREATED)
async def create_quotation(
    payload: QuotationCreate,
    request: Request,
    actor: Actor = Depends(get_actor),
    side_effects: SideEffects = Depends(get_side_effects),
) -> QuotationResponse:
    owner_id = resolve_effective_owner(actor)

    resource = await resource_crud.get_resource(payload.resource_id)
    if resource is None:
        raise NotFoundError("Resource not found")
    if resource.hall_owner_id != owner_id:
        raise AccessDeniedError("Access denied. Resource does not belong to your hall.")

    quotation = await quotation_crud.create_quotation(
        payload,
        hall_owner_id=owner_id,
        created_by=actor.id,
        resource_name=resource.name,
    )
    await side_effects.run(
        "audit:quotation_created",
        audit.quotation_created(actor, quotation, client_ip(request)),
    )
    return quotation


@router.get("/my-quotations", response_model=list[QuotationResponse])
async def list_my_quotations(actor: Actor = Depends(get_actor)) -> list[QuotationResponse]:
    owner_id = resolve_effective_owner(actor)
    return await quotation_crud.list_for_owner(owner_id)


@router.get("/hall-owner/{hall_owner_id}", response_model=list[QuotationResponse])
async def list_owner_quotations(
    hall_owner_id: UUID,
    actor: Actor = Depends(get_actor),
) -> list[QuotationResponse]:
    """Older clients address the listing by owner id."""
    owner_id = resolve_effective_owner(actor, hall_owner_id)
    return await quotation_crud.list_for_owner(owner_id)


@router.get("/{quotation_id}", response_model=QuotationResponse)
async def get_quotation(
    quotation_id: UUID,
    actor: Actor = Depends(get_actor),
) -> QuotationResponse:
    return await _get_accessible(quotation_id, actor)


@router.put("/{quotation_id}", response_model=QuotationResponse)
async def update_quotation(
    quotation_id: UUID,
    payload: QuotationUpdate,
    request: Request,
    actor: Actor = Depends(get_actor),
    side_effects: SideEffects = Depends(get_side_effects),
) -> QuotationResponse:
    quotation = await _get_accessible(quotation_id, actor)
    changes = payload.changes()

    start_time = changes.get("start_time", quotation.start_time)
    end_time = changes.get("end_time", quotation.end_time)
    if minutes_of_day(end_time) <= minutes_of_day(start_time):
        raise ValidationError("End time must be after start time")

    updated = await quotation_crud.update_quotation(quotation_id, changes)
    if not updated:
        raise NotFoundError("Quotation not found")

    await side_effects.run(
        "audit:quotation_updated",
        audit.quotation_updated(
            actor, quotation.model_dump(), updated.model_dump(), client_ip(request)
        ),
    )
    return updated


@router.delete("/{quotation_id}")
async def delete_quotation(
    quotation_id: UUID,
    actor: Actor = Depends(get_actor),
) -> dict:
    await _get_accessible(quotation_id, actor)
    if not await quotation_crud.delete_quotation(quotation_id):
        raise NotFoundError("Quotation not found")
    return {"message": "Quotation deleted successfully"}


@router.put("/{quotation_id}/status", response_model=QuotationResponse)
async def update_quotation_status(
    quotation_id: UUID,
    payload: QuotationStatusUpdate,
    request: Request,
    actor: Actor = Depends(get_actor),
    mailer: Mailer = Depends(get_mailer),
    side_effects: SideEffects = Depends(get_side_effects),
) -> QuotationResponse:
    """
    Sent emails the PDF, Declined emails a notice, Accepted converts the
    quotation into a confirmed booking. Emails never fail the request.
    """
    quotation = await _get_accessible(quotation_id, actor)

    if payload.status == QuotationStatus.ACCEPTED:
        updated, booking, created = await quotation_crud.accept(quotation)
        if created:
            await invalidate_unavailable_cache(booking.hall_owner_id)
            await side_effects.run(
                "email:booking_confirmation",
                mailer.send_booking_confirmation(booking, updated),
            )
            await side_effects.run(
                "audit:booking_created",
                audit.booking_created(actor, booking, client_ip(request), source="quotation"),
            )
    else:
        updated = await quotation_crud.set_status(quotation_id, payload.status)
        if not updated:
            raise NotFoundError("Quotation not found")
        if payload.status == QuotationStatus.SENT:
            await side_effects.run("email:quotation", _email_quotation(mailer, updated))
        elif payload.status == QuotationStatus.DECLINED:
            await side_effects.run(
                "email:quotation_declined", mailer.send_quotation_declined(updated)
            )

    await side_effects.run(
        "audit:quotation_status",
        audit.quotation_updated(
            actor, quotation.model_dump(), updated.model_dump(), client_ip(request)
        ),
    )
    return updated


@router.get("/{quotation_id}/pdf")
async def get_quotation_pdf(
    quotation_id: UUID,
    actor: Actor = Depends(get_actor),
) -> Response:
    quotation = await _get_accessible(quotation_id, actor)
    return Response(
        content=render_quotation_pdf(quotation),
        media_type="application/pdf",
        headers={
            "Content-Disposition": (
                f'attachment; filename="quotation-{quotation.quotation_number}.pdf"'
            )
        },
    )
