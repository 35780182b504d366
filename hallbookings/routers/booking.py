from uuid import UUID

from fastapi import APIRouter, Depends, Request, status
from loguru import logger

from hallbookings import audit
from hallbookings.access import Actor, require_hall_owner, resolve_effective_owner
from hallbookings.cache import (
    get_unavailable_cache,
    invalidate_unavailable_cache,
    set_unavailable_cache,
)
from hallbookings.crud import booking_crud, resource_crud, user_crud
from hallbookings.deps import client_ip, get_actor
from hallbookings.errors import NotFoundError, ValidationError
from hallbookings.models import UserRole
from hallbookings.outbox import SideEffects, get_side_effects
from hallbookings.schemas import (
    BookingCreate,
    BookingPriceUpdate,
    BookingResponse,
    BookingStatusUpdate,
    UnavailableDates,
    UnavailableFilters,
)

router = APIRouter(prefix="/bookings", tags=["bookings"])


async def _get_booking_or_404(booking_id: UUID) -> BookingResponse:
    booking = await booking_crud.get_booking(booking_id)
    if not booking:
        raise NotFoundError("Booking not found")
    return booking


async def _require_hall_owner_user(hall_owner_id: UUID) -> None:
    owner = await user_crud.get_user(hall_owner_id)
    if owner is None or owner.role != UserRole.HALL_OWNER:
        raise NotFoundError("Hall owner not found")


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    payload: BookingCreate,
    request: Request,
    side_effects: SideEffects = Depends(get_side_effects),
) -> BookingResponse:
    """Customer-facing booking request. No authentication; lands as pending."""
    await _require_hall_owner_user(payload.hall_owner_id)

    hall = await resource_crud.get_resource(payload.hall_id)
    if hall is None:
        raise NotFoundError("Selected hall not found")
    if hall.hall_owner_id != payload.hall_owner_id:
        raise ValidationError("Selected hall does not belong to this hall owner")

    booking = await booking_crud.create_booking(payload, hall_name=hall.name)
    await invalidate_unavailable_cache(booking.hall_owner_id)

    await side_effects.run(
        "audit:booking_created",
        audit.booking_created(None, booking, client_ip(request)),
    )
    return booking


@router.get("/unavailable-dates/{hall_owner_id}", response_model=UnavailableDates)
async def get_unavailable_dates(
    hall_owner_id: UUID,
    filters: UnavailableFilters = Depends(),
) -> UnavailableDates:
    """
    Occupied slots for an owner's halls, grouped by date then hall.
    Public: drives the customer booking calendar.
    """
    await _require_hall_owner_user(hall_owner_id)

    suffix = filters.cache_suffix()
    cached = await get_unavailable_cache(hall_owner_id, suffix)
    if cached is not None:
        logger.debug("Cache hit for unavailable dates: owner={} {}", hall_owner_id, suffix)
        return UnavailableDates(**cached)

    logger.debug("Cache miss for unavailable dates: owner={} {}", hall_owner_id, suffix)
    result = await booking_crud.unavailable_dates(hall_owner_id, filters)
    await set_unavailable_cache(hall_owner_id, suffix, result.model_dump(mode="json"))
    return result


# ---------------------------------------------------------------------------
# Hall owner / sub-user endpoints
# ---------------------------------------------------------------------------


@router.get("/hall-owner/{hall_owner_id}", response_model=list[BookingResponse])
async def list_owner_bookings(
    hall_owner_id: UUID,
    actor: Actor = Depends(get_actor),
) -> list[BookingResponse]:
    owner_id = resolve_effective_owner(actor, hall_owner_id)
    return await booking_crud.list_for_owner(owner_id)


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: UUID,
    actor: Actor = Depends(get_actor),
) -> BookingResponse:
    booking = await _get_booking_or_404(booking_id)
    resolve_effective_owner(actor, booking.hall_owner_id)
    return booking


@router.put("/{booking_id}/status", response_model=BookingResponse)
async def update_booking_status(
    booking_id: UUID,
    payload: BookingStatusUpdate,
    request: Request,
    actor: Actor = Depends(get_actor),
    side_effects: SideEffects = Depends(get_side_effects),
) -> BookingResponse:
    # Any status value is accepted; there is no transition table.
    booking = await _get_booking_or_404(booking_id)
    require_hall_owner(actor, booking.hall_owner_id)

    updated = await booking_crud.update_status(booking_id, payload.status)
    if not updated:
        raise NotFoundError("Booking not found")

    await invalidate_unavailable_cache(booking.hall_owner_id)
    await side_effects.run(
        "audit:booking_status",
        audit.booking_updated(
            actor, booking.model_dump(), updated.model_dump(), client_ip(request)
        ),
    )
    return updated


@router.put("/{booking_id}/price", response_model=BookingResponse)
async def update_booking_price(
    booking_id: UUID,
    payload: BookingPriceUpdate,
    request: Request,
    actor: Actor = Depends(get_actor),
    side_effects: SideEffects = Depends(get_side_effects),
) -> BookingResponse:
    booking = await _get_booking_or_404(booking_id)
    require_hall_owner(actor, booking.hall_owner_id)

    updated = await booking_crud.update_price(booking_id, payload)
    if not updated:
        raise NotFoundError("Booking not found")

    await side_effects.run(
        "audit:booking_price",
        audit.booking_updated(
            actor, booking.model_dump(), updated.model_dump(), client_ip(request)
        ),
    )
    return updated
