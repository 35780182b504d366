"""
Shared pytest fixtures available to every test file automatically.
No imports needed in test files — pytest discovers this by convention.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from hallbookings.db import close_db, init_db
from hallbookings.deps import get_actor, get_mailer
from hallbookings.errors import install_error_handlers
from hallbookings.outbox import get_side_effects
from hallbookings.routers import booking, invoice, quotation, resource

from .factories import make_hall_owner, make_sub_user

# ---------------------------------------------------------------------------
# Side-effect doubles — no SMTP, no audit writes
# ---------------------------------------------------------------------------


class RecordingSideEffects:
    """Records effect labels and discards the awaitables unexecuted."""

    def __init__(self) -> None:
        self.labels: list[str] = []

    async def run(self, label: str, effect: Awaitable[Any]) -> bool:
        self.labels.append(label)
        close = getattr(effect, "close", None)
        if close is not None:
            close()
        return True


def _noop_mailer() -> MagicMock:
    mock = MagicMock()
    mock.send_quotation = AsyncMock()
    mock.send_quotation_declined = AsyncMock()
    mock.send_booking_confirmation = AsyncMock()
    mock.send_invoice = AsyncMock()
    return mock


# ---------------------------------------------------------------------------
# App builder — used by all client fixtures
# ---------------------------------------------------------------------------


def build_app(actor=None, mailer=None, side_effects=None) -> FastAPI:
    """
    Fresh FastAPI app with every router and the error handlers installed.

    `actor` overrides get_actor so auth never runs; leave it None to exercise
    the real bearer-token dependency.
    """
    app = FastAPI()
    install_error_handlers(app)
    app.include_router(booking.router)
    app.include_router(quotation.router)
    app.include_router(invoice.router)
    app.include_router(resource.router)
    app.include_router(resource.pricing_router)

    if actor is not None:

        async def _actor():
            return actor

        app.dependency_overrides[get_actor] = _actor

    m = mailer if mailer is not None else _noop_mailer()
    se = side_effects if side_effects is not None else RecordingSideEffects()
    app.dependency_overrides[get_mailer] = lambda: m
    app.dependency_overrides[get_side_effects] = lambda: se
    return app


# ---------------------------------------------------------------------------
# Redis is never touched in tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def no_redis():
    with (
        patch("hallbookings.routers.booking.get_unavailable_cache", AsyncMock(return_value=None)),
        patch("hallbookings.routers.booking.set_unavailable_cache", AsyncMock()),
        patch("hallbookings.routers.booking.invalidate_unavailable_cache", AsyncMock()),
        patch("hallbookings.routers.quotation.invalidate_unavailable_cache", AsyncMock()),
    ):
        yield


# ---------------------------------------------------------------------------
# Reusable client fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def public_client():
    return TestClient(build_app(), raise_server_exceptions=True)


@pytest.fixture()
def owner_client():
    return TestClient(build_app(make_hall_owner()), raise_server_exceptions=True)


@pytest.fixture()
def sub_user_client():
    return TestClient(build_app(make_sub_user()), raise_server_exceptions=True)


@pytest.fixture()
def client_factory():
    def _make(actor=None, mailer=None, side_effects=None) -> TestClient:
        return TestClient(
            build_app(actor, mailer=mailer, side_effects=side_effects),
            raise_server_exceptions=True,
        )

    return _make


# ---------------------------------------------------------------------------
# Real database — fresh SQLite per scenario
# ---------------------------------------------------------------------------


@pytest.fixture()
def run_db(tmp_path) -> Callable[..., Any]:
    """
    Run an async scenario against a fresh database.

        def test_x(run_db):
            async def scenario(): ...
            result = run_db(scenario)

    In-memory by default; pass on_disk=True when the scenario runs
    concurrent sessions and needs a real connection pool.
    """

    def _run(scenario: Callable[[], Awaitable[Any]], on_disk: bool = False) -> Any:
        url = (
            f"sqlite+aiosqlite:///{tmp_path / 'bookings.db'}"
            if on_disk
            else "sqlite+aiosqlite:///:memory:"
        )

        async def _main() -> Any:
            await init_db(url, create_tables=True)
            try:
                return await scenario()
            finally:
                await close_db()

        return asyncio.run(_main())

    return _run
