"""
Outbound customer email over SMTP.

smtplib is blocking, so every send runs in the default thread executor.
Callers dispatch these through SideEffects; a failure here raises and is
logged there.
"""

from __future__ import annotations

import asyncio
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Any

from loguru import logger

from hallbookings import settings


@dataclass
class MailerConfig:
    smtp_host: str
    smtp_port: int
    username: str
    password: str
    use_tls: bool = True
    from_email: str = ""
    timeout: float = 10.0

    @classmethod
    def from_settings(cls) -> MailerConfig:
        return cls(
            smtp_host=settings.SMTP_HOST,
            smtp_port=settings.SMTP_PORT,
            username=settings.SMTP_USERNAME,
            password=settings.SMTP_PASSWORD,
            use_tls=settings.SMTP_USE_TLS,
            from_email=settings.FROM_EMAIL,
            timeout=settings.SMTP_TIMEOUT,
        )


def build_message(
    *,
    to: str,
    subject: str,
    body_text: str,
    from_email: str,
    attachment: tuple[str, bytes] | None = None,
) -> EmailMessage:
    msg = EmailMessage()
    msg["Subject"] = f"{settings.BUSINESS_NAME} - {subject}"
    msg["From"] = from_email
    msg["To"] = to
    msg.set_content(body_text)
    if attachment is not None:
        filename, data = attachment
        msg.add_attachment(
            data, maintype="application", subtype="pdf", filename=filename
        )
    return msg


def _money(value: Any) -> str:
    return f"${float(value):.2f} {settings.CURRENCY}"


class Mailer:
    def __init__(self, config: MailerConfig) -> None:
        self.config = config

    def _send_sync(self, msg: EmailMessage) -> None:
        with smtplib.SMTP(
            self.config.smtp_host, self.config.smtp_port, timeout=self.config.timeout
        ) as server:
            if self.config.use_tls:
                server.starttls()
            if self.config.username and self.config.password:
                server.login(self.config.username, self.config.password)
            server.send_message(msg)

    async def send(self, msg: EmailMessage) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._send_sync, msg)
        logger.info("Email '{}' sent to {}", msg["Subject"], msg["To"])

    async def send_quotation(self, quotation: Any, pdf: bytes) -> None:
        body = (
            f"Dear {quotation.customer_name},\n\n"
            f"Please find attached quotation {quotation.quotation_number} for your "
            f"{quotation.event_type} at {quotation.resource_name} on "
            f"{quotation.event_date} ({quotation.start_time} - {quotation.end_time}).\n\n"
            f"Total: {_money(quotation.total_amount)}\n"
            f"Valid until: {quotation.valid_until:%d %b %Y}\n\n"
            "Reply to this email to accept the quotation.\n"
        )
        await self.send(
            build_message(
                to=quotation.customer_email,
                subject=f"Quotation {quotation.quotation_number}",
                body_text=body,
                from_email=self.config.from_email,
                attachment=(f"quotation-{quotation.quotation_number}.pdf", pdf),
            )
        )

    async def send_quotation_declined(self, quotation: Any) -> None:
        body = (
            f"Dear {quotation.customer_name},\n\n"
            f"Quotation {quotation.quotation_number} for your {quotation.event_type} "
            f"at {quotation.resource_name} on {quotation.event_date} has been declined.\n\n"
            "Contact us if you would like a new quotation for another date.\n"
        )
        await self.send(
            build_message(
                to=quotation.customer_email,
                subject=f"Quotation {quotation.quotation_number} declined",
                body_text=body,
                from_email=self.config.from_email,
            )
        )

    async def send_booking_confirmation(self, booking: Any, quotation: Any) -> None:
        guests = f"Guests: {booking.guest_count}\n" if booking.guest_count else ""
        body = (
            f"Dear {booking.customer_name},\n\n"
            f"Your booking is confirmed.\n\n"
            f"Booking ID: {booking.id}\n"
            f"Quotation: {quotation.quotation_number}\n"
            f"Event: {booking.event_type}\n"
            f"Hall: {booking.hall_name}\n"
            f"Date: {booking.booking_date} {booking.start_time} - {booking.end_time}\n"
            f"{guests}"
            f"Total: {_money(booking.calculated_price)}\n"
        )
        await self.send(
            build_message(
                to=booking.customer_email,
                subject="Booking confirmed",
                body_text=body,
                from_email=self.config.from_email,
            )
        )

    async def send_invoice(self, invoice: Any, pdf: bytes) -> None:
        customer = invoice.customer or {}
        body = (
            f"Dear {customer.get('name', 'customer')},\n\n"
            f"Please find attached invoice {invoice.invoice_number} "
            f"({invoice.invoice_type}).\n\n"
            f"Total: {_money(invoice.total)}\n"
            f"Due: {invoice.due_date:%d %b %Y}\n"
        )
        await self.send(
            build_message(
                to=customer["email"],
                subject=f"Invoice {invoice.invoice_number}",
                body_text=body,
                from_email=self.config.from_email,
                attachment=(f"invoice-{invoice.invoice_number}.pdf", pdf),
            )
        )
