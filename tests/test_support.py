"""Cache, side effects, mailer, PDFs, error handlers and the app factory."""

from __future__ import annotations

import asyncio
import json
import sys
from unittest.mock import AsyncMock, MagicMock, patch

from fastapi import FastAPI
from fastapi.testclient import TestClient
from loguru import logger

from hallbookings import cache
from hallbookings.errors import ConflictError, install_error_handlers
from hallbookings.log import booking_log, configure_logging, payment_log
from hallbookings.main import create_app
from hallbookings.notifications import Mailer, MailerConfig, build_message
from hallbookings.outbox import SideEffects
from hallbookings.pdf import render_invoice_pdf, render_quotation_pdf

from .factories import HALL_OWNER_ID, booking_response, invoice_response, quotation_response


def run(coro):
    return asyncio.run(coro)


# ---------------------------------------------------------------------------
# Unavailable-dates cache
# ---------------------------------------------------------------------------


def fake_redis(keys=()):
    redis = MagicMock()
    redis.get = AsyncMock(return_value=None)
    redis.setex = AsyncMock()
    redis.delete = AsyncMock()

    async def scan_iter(match):
        for key in keys:
            yield key

    redis.scan_iter = MagicMock(side_effect=scan_iter)
    return redis


class TestUnavailableCache:
    def test_hit_is_decoded(self):
        redis = fake_redis()
        redis.get.return_value = json.dumps({"total_bookings": 3})
        with patch("hallbookings.cache.get_redis", return_value=redis):
            assert run(cache.get_unavailable_cache(HALL_OWNER_ID, "*:*:*")) == {"total_bookings": 3}
        redis.get.assert_awaited_once_with(f"unavailable:{HALL_OWNER_ID}:*:*:*")

    def test_set_uses_ttl(self):
        redis = fake_redis()
        with patch("hallbookings.cache.get_redis", return_value=redis):
            run(cache.set_unavailable_cache(HALL_OWNER_ID, "x", {"a": 1}))
        redis.setex.assert_awaited_once_with(
            f"unavailable:{HALL_OWNER_ID}:x", cache.UNAVAILABLE_TTL, '{"a": 1}'
        )

    def test_invalidate_drops_every_filter(self):
        keys = [f"unavailable:{HALL_OWNER_ID}:a", f"unavailable:{HALL_OWNER_ID}:b"]
        redis = fake_redis(keys)
        with patch("hallbookings.cache.get_redis", return_value=redis):
            run(cache.invalidate_unavailable_cache(HALL_OWNER_ID))
        redis.delete.assert_awaited_once_with(*keys)

    def test_redis_outage_is_a_miss(self):
        redis = fake_redis()
        redis.get.side_effect = ConnectionError("redis down")
        with patch("hallbookings.cache.get_redis", return_value=redis):
            assert run(cache.get_unavailable_cache(HALL_OWNER_ID, "x")) is None


# ---------------------------------------------------------------------------
# Side effects
# ---------------------------------------------------------------------------


class TestSideEffects:
    def test_success(self):
        effect = AsyncMock(return_value="ok")
        assert run(SideEffects().run("email:x", effect())) is True
        effect.assert_awaited_once()

    def test_failure_is_swallowed(self):
        async def broken():
            raise RuntimeError("smtp down")

        assert run(SideEffects().run("email:x", broken())) is False


# ---------------------------------------------------------------------------
# Mailer
# ---------------------------------------------------------------------------


def mailer() -> Mailer:
    return Mailer(
        MailerConfig(
            smtp_host="smtp.test",
            smtp_port=25,
            username="",
            password="",
            use_tls=False,
            from_email="bookings@hall.test",
            timeout=5.0,
        )
    )


class TestMailer:
    def test_build_message_attaches_pdf(self):
        msg = build_message(
            to="jane@example.com",
            subject="Quotation QUO-1",
            body_text="hello",
            from_email="bookings@hall.test",
            attachment=("quotation-QUO-1.pdf", b"%PDF-1.4"),
        )
        assert msg["To"] == "jane@example.com"
        assert msg["Subject"].endswith("Quotation QUO-1")
        attachments = list(msg.iter_attachments())
        assert attachments[0].get_filename() == "quotation-QUO-1.pdf"
        assert attachments[0].get_content_type() == "application/pdf"

    def test_quotation_email(self):
        m = mailer()
        with patch.object(Mailer, "_send_sync") as send:
            run(m.send_quotation(quotation_response(), b"%PDF"))
        msg = send.call_args[0][0]
        assert msg["To"] == "jane@example.com"
        assert "QUO-123456" in msg["Subject"]
        assert "$1500.00" in msg.get_body(("plain",)).get_content()

    def test_booking_confirmation(self):
        m = mailer()
        with patch.object(Mailer, "_send_sync") as send:
            run(m.send_booking_confirmation(booking_response(guest_count=80), quotation_response()))
        body = send.call_args[0][0].get_body(("plain",)).get_content()
        assert "Guests: 80" in body
        assert "Quotation: QUO-123456" in body

    def test_invoice_email_goes_to_snapshot_address(self):
        m = mailer()
        with patch.object(Mailer, "_send_sync") as send:
            run(m.send_invoice(invoice_response(), b"%PDF"))
        msg = send.call_args[0][0]
        assert msg["To"] == "jane@example.com"
        assert list(msg.iter_attachments())[0].get_filename() == "invoice-INV-202606-0042.pdf"

    def test_smtp_failure_propagates(self):
        m = mailer()
        with patch.object(Mailer, "_send_sync", side_effect=OSError("refused")):
            sent = run(
                SideEffects().run("email:declined", m.send_quotation_declined(quotation_response()))
            )
        assert sent is False

    def test_smtp_connection_has_timeout(self):
        m = mailer()
        msg = build_message(
            to="jane@example.com", subject="Hi", body_text="hello", from_email="bookings@hall.test"
        )
        with patch("hallbookings.notifications.smtplib.SMTP") as smtp:
            m._send_sync(msg)
        smtp.assert_called_once_with("smtp.test", 25, timeout=5.0)
        smtp.return_value.__enter__.return_value.send_message.assert_called_once_with(msg)

    def test_timeout_comes_from_settings(self):
        with patch("hallbookings.notifications.settings.SMTP_TIMEOUT", 3.0):
            assert MailerConfig.from_settings().timeout == 3.0


# ---------------------------------------------------------------------------
# PDFs
# ---------------------------------------------------------------------------


def test_quotation_pdf_renders():
    pdf = render_quotation_pdf(quotation_response(guest_count=None), business_name="Test Hall")
    assert pdf.startswith(b"%PDF")


def test_invoice_pdf_renders_every_line_item():
    invoice = invoice_response(
        line_items=[
            {"description": "Deposit", "unit_price": 100.0},
            {"description": "Cleaning", "unit_price": 50.0},
        ],
        notes="Pay by EFT",
    )
    assert render_invoice_pdf(invoice).startswith(b"%PDF")


# ---------------------------------------------------------------------------
# Error handlers and app
# ---------------------------------------------------------------------------


def _error_app() -> FastAPI:
    app = FastAPI()
    install_error_handlers(app)

    @app.get("/conflict")
    async def conflict():
        raise ConflictError("taken", conflicting_booking={"start_time": "10:00"})

    @app.get("/boom")
    async def boom():
        raise RuntimeError("kaput")

    return app


def test_domain_error_body_carries_payload():
    resp = TestClient(_error_app()).get("/conflict")
    assert resp.status_code == 409
    assert resp.json() == {"message": "taken", "conflicting_booking": {"start_time": "10:00"}}


def test_unexpected_error_is_500():
    with patch("hallbookings.errors.settings.ENVIRONMENT", "production"):
        resp = TestClient(_error_app(), raise_server_exceptions=False).get("/boom")
    assert resp.status_code == 500
    assert resp.json() == {"message": "Internal server error"}


def test_unexpected_error_detail_in_development():
    with patch("hallbookings.errors.settings.ENVIRONMENT", "development"):
        resp = TestClient(_error_app(), raise_server_exceptions=False).get("/boom")
    assert resp.json()["error"] == "kaput"


def test_health():
    resp = TestClient(create_app()).get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "OK"


def test_log_files_split_by_type(tmp_path):
    with patch("hallbookings.log.settings.LOG_DIR", str(tmp_path)):
        configure_logging()
    try:
        booking_log.info("booking line")
        payment_log.info("payment line")
        logger.complete()
    finally:
        logger.remove()
        logger.add(sys.stderr)

    assert "booking line" in (tmp_path / "bookings.log").read_text()
    assert "payment line" not in (tmp_path / "bookings.log").read_text()
    assert "payment line" in (tmp_path / "payments.log").read_text()
    assert "booking line" in (tmp_path / "app.log").read_text()
