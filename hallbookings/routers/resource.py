from uuid import UUID

from fastapi import APIRouter, Depends, Request, status

from hallbookings import audit
from hallbookings.access import Actor, resolve_effective_owner
from hallbookings.crud import pricing_crud, resource_crud
from hallbookings.deps import client_ip, get_actor
from hallbookings.errors import NotFoundError
from hallbookings.outbox import SideEffects, get_side_effects
from hallbookings.schemas import (
    RateCardResponse,
    RateCardUpsert,
    ResourceCreate,
    ResourceResponse,
)

router = APIRouter(prefix="/resources", tags=["resources"])
pricing_router = APIRouter(prefix="/pricing", tags=["pricing"])


# ---------------------------------------------------------------------------
# Resources (halls)
# ---------------------------------------------------------------------------


@router.get("/hall-owner/{hall_owner_id}", response_model=list[ResourceResponse])
async def list_owner_resources(hall_owner_id: UUID) -> list[ResourceResponse]:
    """Public: the booking form lists an owner's halls."""
    return await resource_crud.list_for_owner(hall_owner_id)


@router.post("/", response_model=ResourceResponse, status_code=status.HTTP_201_CREATED)
async def create_resource(
    payload: ResourceCreate,
    request: Request,
    actor: Actor = Depends(get_actor),
    side_effects: SideEffects = Depends(get_side_effects),
) -> ResourceResponse:
    owner_id = resolve_effective_owner(actor)
    resource = await resource_crud.create_resource(owner_id, payload)
    await side_effects.run(
        "audit:resource_created",
        audit.resource_created(actor, resource, client_ip(request)),
    )
    return resource


# ---------------------------------------------------------------------------
# Rate cards
# ---------------------------------------------------------------------------


@pricing_router.get("/{resource_id}", response_model=RateCardResponse)
async def get_rate_card(resource_id: UUID) -> RateCardResponse:
    """Public: lets the booking form show an estimate."""
    card = await pricing_crud.get_rate_card(resource_id)
    if card is None:
        raise NotFoundError("Pricing not found for this resource")
    return card


@pricing_router.put("/{resource_id}", response_model=RateCardResponse)
async def upsert_rate_card(
    resource_id: UUID,
    payload: RateCardUpsert,
    request: Request,
    actor: Actor = Depends(get_actor),
    side_effects: SideEffects = Depends(get_side_effects),
) -> RateCardResponse:
    resource = await resource_crud.get_resource(resource_id)
    if resource is None:
        raise NotFoundError("Resource not found")
    owner_id = resolve_effective_owner(actor, resource.hall_owner_id)

    previous, card = await pricing_crud.upsert_rate_card(owner_id, resource_id, payload)
    await side_effects.run(
        "audit:pricing_updated",
        audit.pricing_updated(
            actor,
            previous.model_dump() if previous else {},
            card.model_dump(),
            client_ip(request),
        ),
    )
    return card
