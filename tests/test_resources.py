from __future__ import annotations

from datetime import UTC, datetime
from unittest.mock import AsyncMock, patch

from hallbookings.models import RateType
from hallbookings.schemas import RateCardResponse, ResourceResponse

from .conftest import RecordingSideEffects
from .factories import HALL_ID, HALL_OWNER_ID, OTHER_OWNER_ID, make_hall_owner

RESOURCE_CRUD_PATH = "hallbookings.routers.resource.resource_crud"
PRICING_CRUD_PATH = "hallbookings.routers.resource.pricing_crud"


def hall(owner_id=HALL_OWNER_ID) -> ResourceResponse:
    return ResourceResponse(id=HALL_ID, hall_owner_id=owner_id, name="Main Hall", capacity=120)


def rate_card(**overrides) -> RateCardResponse:
    base = dict(
        hall_owner_id=HALL_OWNER_ID,
        resource_id=HALL_ID,
        rate_type=RateType.HOURLY,
        weekday_rate="50.00",
        weekend_rate="80.00",
        updated_at=datetime(2026, 6, 1, tzinfo=UTC),
    )
    return RateCardResponse(**{**base, **overrides})


class TestResources:
    def test_public_listing(self, public_client):
        with patch(RESOURCE_CRUD_PATH) as mock_crud:
            mock_crud.list_for_owner = AsyncMock(return_value=[hall()])
            resp = public_client.get(f"/resources/hall-owner/{HALL_OWNER_ID}")
        assert resp.status_code == 200
        assert resp.json()[0]["capacity"] == 120

    def test_sub_user_creates_for_parent(self, sub_user_client):
        with patch(RESOURCE_CRUD_PATH) as mock_crud:
            mock_crud.create_resource = AsyncMock(return_value=hall())
            resp = sub_user_client.post("/resources/", json={"name": "Main Hall", "capacity": 120})
        assert resp.status_code == 201
        owner_id, payload = mock_crud.create_resource.call_args[0]
        assert owner_id == HALL_OWNER_ID
        assert payload.name == "Main Hall"

    def test_blank_name_returns_400(self, owner_client):
        resp = owner_client.post("/resources/", json={"name": " "})
        assert resp.status_code == 400


class TestRateCards:
    def test_public_read(self, public_client):
        with patch(PRICING_CRUD_PATH) as mock_crud:
            mock_crud.get_rate_card = AsyncMock(return_value=rate_card())
            resp = public_client.get(f"/pricing/{HALL_ID}")
        assert resp.status_code == 200
        assert resp.json()["rate_type"] == "hourly"

    def test_missing_rate_card_returns_404(self, public_client):
        with patch(PRICING_CRUD_PATH) as mock_crud:
            mock_crud.get_rate_card = AsyncMock(return_value=None)
            resp = public_client.get(f"/pricing/{HALL_ID}")
        assert resp.status_code == 404
        assert resp.json() == {"message": "Pricing not found for this resource"}

    def test_owner_upserts(self, client_factory):
        se = RecordingSideEffects()
        client = client_factory(make_hall_owner(), side_effects=se)
        with patch(RESOURCE_CRUD_PATH) as mock_resources, patch(PRICING_CRUD_PATH) as mock_crud:
            mock_resources.get_resource = AsyncMock(return_value=hall())
            mock_crud.upsert_rate_card = AsyncMock(
                return_value=(rate_card(), rate_card(rate_type=RateType.DAILY))
            )
            resp = client.put(
                f"/pricing/{HALL_ID}",
                json={"rate_type": "daily", "weekday_rate": 400, "weekend_rate": 600},
            )
        assert resp.status_code == 200
        assert resp.json()["rate_type"] == "daily"
        assert mock_crud.upsert_rate_card.call_args[0][:2] == (HALL_OWNER_ID, HALL_ID)
        assert se.labels == ["audit:pricing_updated"]

    def test_foreign_resource_is_forbidden(self, owner_client):
        with patch(RESOURCE_CRUD_PATH) as mock_resources, patch(PRICING_CRUD_PATH) as mock_crud:
            mock_resources.get_resource = AsyncMock(return_value=hall(OTHER_OWNER_ID))
            mock_crud.upsert_rate_card = AsyncMock()
            resp = owner_client.put(
                f"/pricing/{HALL_ID}",
                json={"rate_type": "hourly", "weekday_rate": 1, "weekend_rate": 1},
            )
        assert resp.status_code == 403
        mock_crud.upsert_rate_card.assert_not_called()

    def test_negative_rate_returns_400(self, owner_client):
        resp = owner_client.put(
            f"/pricing/{HALL_ID}",
            json={"rate_type": "hourly", "weekday_rate": -1, "weekend_rate": 1},
        )
        assert resp.status_code == 400
