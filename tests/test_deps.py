"""
Tests for hallbookings/deps.py: bearer tokens, identity-provider fallback,
get_actor. These use the real dependency chain (no get_actor override).
"""

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import httpx
from fastapi.testclient import TestClient
from starlette.requests import Request

from hallbookings.deps import (
    IdentityProviderClient,
    Principal,
    client_ip,
    create_session_token,
    decode_session_token,
    get_identity_client,
)
from hallbookings.models import UserRole

from .conftest import build_app
from .factories import HALL_OWNER_ID, SUB_USER_ID

CRUD_PATH = "hallbookings.routers.booking.booking_crud"
USER_CRUD_PATH = "hallbookings.deps.user_crud"
LIST_URL = f"/bookings/hall-owner/{HALL_OWNER_ID}"


def owner_row(**overrides):
    base = dict(
        id=HALL_OWNER_ID,
        email="owner@example.com",
        role=UserRole.HALL_OWNER,
        parent_user_id=None,
    )
    return SimpleNamespace(**{**base, **overrides})


def _app_with_idp(verify_result=None):
    app = build_app()
    idp = MagicMock()
    idp.verify = AsyncMock(return_value=verify_result)
    app.dependency_overrides[get_identity_client] = lambda: idp
    return app, idp


class TestSessionTokens:
    def test_round_trip(self):
        token = create_session_token(HALL_OWNER_ID, "owner@example.com", "hall_owner")
        principal = decode_session_token(token)
        assert principal == Principal(id=HALL_OWNER_ID, email="owner@example.com")

    def test_garbage_is_rejected(self):
        assert decode_session_token("not.a.token") is None

    def test_wrong_secret_is_rejected(self):
        token = create_session_token(HALL_OWNER_ID, "owner@example.com", "hall_owner")
        with patch("hallbookings.deps.settings.JWT_SECRET", "another-secret"):
            assert decode_session_token(token) is None

    def test_expired_is_rejected(self):
        with patch("hallbookings.deps.settings.SESSION_TOKEN_TTL_HOURS", -1):
            token = create_session_token(HALL_OWNER_ID, "owner@example.com", "hall_owner")
        assert decode_session_token(token) is None


class TestGetActor:
    def test_missing_header_returns_401(self):
        app, _ = _app_with_idp()
        resp = TestClient(app).get(LIST_URL)
        assert resp.status_code == 401
        assert resp.json() == {"message": "No token provided"}

    def test_session_token_authenticates(self):
        app, idp = _app_with_idp()
        token = create_session_token(HALL_OWNER_ID, "owner@example.com", "hall_owner")
        with patch(CRUD_PATH) as mock_crud, patch(USER_CRUD_PATH) as mock_users:
            mock_crud.list_for_owner = AsyncMock(return_value=[])
            mock_users.get_user = AsyncMock(return_value=owner_row())
            resp = TestClient(app).get(LIST_URL, headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 200
        idp.verify.assert_not_called()
        mock_users.get_user.assert_awaited_once_with(HALL_OWNER_ID)

    def test_identity_provider_fallback(self):
        app, idp = _app_with_idp(Principal(id=SUB_USER_ID, email="staff@example.com"))
        staff = owner_row(
            id=SUB_USER_ID,
            email="staff@example.com",
            role=UserRole.SUB_USER,
            parent_user_id=HALL_OWNER_ID,
        )
        with patch(CRUD_PATH) as mock_crud, patch(USER_CRUD_PATH) as mock_users:
            mock_crud.list_for_owner = AsyncMock(return_value=[])
            mock_users.get_user = AsyncMock(return_value=staff)
            resp = TestClient(app).get(LIST_URL, headers={"Authorization": "Bearer idp-token"})
        assert resp.status_code == 200
        idp.verify.assert_awaited_once_with("idp-token")
        mock_crud.list_for_owner.assert_awaited_once_with(HALL_OWNER_ID)

    def test_unverifiable_token_returns_401(self):
        app, _ = _app_with_idp(None)
        resp = TestClient(app).get(LIST_URL, headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401
        assert resp.json() == {"message": "Invalid token"}

    def test_unknown_user_returns_404(self):
        app, _ = _app_with_idp()
        token = create_session_token(uuid4(), "ghost@example.com", "hall_owner")
        with patch(USER_CRUD_PATH) as mock_users:
            mock_users.get_user = AsyncMock(return_value=None)
            resp = TestClient(app).get(LIST_URL, headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 404
        assert resp.json() == {"message": "User not found"}


class TestIdentityProviderClient:
    def _verify(self, **post_kwargs):
        http = MagicMock()
        http.post = AsyncMock(**post_kwargs)
        with patch("hallbookings.deps._get_idp_http_client", return_value=http):
            return asyncio.run(IdentityProviderClient().verify("tok")), http

    def test_verified(self):
        uid = uuid4()
        principal, http = self._verify(
            return_value=httpx.Response(200, json={"uid": str(uid), "email": "a@b.co"})
        )
        assert principal == Principal(id=uid, email="a@b.co")
        assert http.post.call_args.kwargs["json"] == {"id_token": "tok"}

    def test_rejected(self):
        principal, _ = self._verify(return_value=httpx.Response(401, json={"error": "bad"}))
        assert principal is None

    def test_unreachable(self):
        principal, _ = self._verify(side_effect=httpx.ConnectError("down"))
        assert principal is None

    def test_malformed_body(self):
        principal, _ = self._verify(return_value=httpx.Response(200, json={"email": "a@b.co"}))
        assert principal is None

    def test_dependency_is_singleton(self):
        assert get_identity_client() is get_identity_client()


def test_client_ip_prefers_forwarded_header():
    scope = {
        "type": "http",
        "headers": [(b"x-forwarded-for", b"203.0.113.7, 10.0.0.1")],
        "client": ("10.0.0.1", 1234),
    }
    assert client_ip(Request(scope)) == "203.0.113.7"
    assert client_ip(Request({"type": "http", "headers": [], "client": ("10.0.0.2", 1)})) == "10.0.0.2"
