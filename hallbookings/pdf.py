from io import BytesIO
from typing import Any

from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

from hallbookings import settings

LEFT = 50
INDENT = 70
LINE = 18


def _money(value: Any) -> str:
    return f"${float(value):.2f} {settings.CURRENCY}"


class _Writer:
    """Top-down line writer over a reportlab canvas."""

    def __init__(self, c: canvas.Canvas, top: float) -> None:
        self.c = c
        self.y = top

    def line(self, text: str, x: float = LEFT, font: str = "Helvetica", size: int = 11) -> None:
        self.c.setFont(font, size)
        self.c.drawString(x, self.y, text)
        self.y -= LINE

    def right(self, text: str, x: float, size: int = 11, font: str = "Helvetica") -> None:
        self.c.setFont(font, size)
        self.c.drawRightString(x, self.y, text)
        self.y -= LINE

    def gap(self, lines: float = 1) -> None:
        self.y -= LINE * lines


def render_quotation_pdf(quotation: Any, business_name: str | None = None) -> bytes:
    buf = BytesIO()
    c = canvas.Canvas(buf, pagesize=A4)
    width, height = A4
    w = _Writer(c, height - 50)

    w.line(business_name or settings.BUSINESS_NAME, font="Helvetica-Bold", size=18)
    w.line("Quotation", size=14)
    w.gap()

    w.line(f"Quotation ID: {quotation.quotation_number}")
    w.line(f"Date: {quotation.created_at:%d/%m/%Y}")
    w.line(f"Valid Until: {quotation.valid_until:%d/%m/%Y}")
    w.gap()

    w.line("Customer Details:", font="Helvetica-Bold")
    w.line(f"Name: {quotation.customer_name}", x=INDENT)
    w.line(f"Email: {quotation.customer_email}", x=INDENT)
    w.line(f"Phone: {quotation.customer_phone}", x=INDENT)
    w.gap()

    w.line("Event Details:", font="Helvetica-Bold")
    w.line(f"Event Type: {quotation.event_type}", x=INDENT)
    w.line(f"Resource: {quotation.resource_name}", x=INDENT)
    w.line(f"Event Date: {quotation.event_date:%d/%m/%Y}", x=INDENT)
    w.line(f"Time: {quotation.start_time} - {quotation.end_time}", x=INDENT)
    w.line(f"Guest Count: {quotation.guest_count or 'N/A'}", x=INDENT)
    w.gap()

    w.line(f"Total Amount: {_money(quotation.total_amount)}", font="Helvetica-Bold", size=14)
    w.gap()

    w.line("Terms and Conditions:", size=10, font="Helvetica-Bold")
    for term in (
        "This quotation is valid until the date specified above.",
        "Payment terms: 50% deposit required to confirm booking.",
        "Cancellation policy applies as per venue terms.",
        "Prices are subject to change without notice.",
    ):
        w.line(f"- {term}", x=INDENT, size=10)

    c.showPage()
    c.save()
    return buf.getvalue()


def render_invoice_pdf(invoice: Any, business_name: str | None = None) -> bytes:
    buf = BytesIO()
    c = canvas.Canvas(buf, pagesize=A4)
    width, height = A4
    w = _Writer(c, height - 50)
    customer = invoice.customer or {}

    c.setFont("Helvetica-Bold", 18)
    c.drawCentredString(width / 2, w.y, "TAX INVOICE")
    w.gap(1.5)

    w.right(f"Invoice No: {invoice.invoice_number}", width - LEFT, size=10)
    w.right(f"Issue Date: {invoice.issue_date:%d/%m/%Y}", width - LEFT, size=10)
    w.right(f"Due Date: {invoice.due_date:%d/%m/%Y}", width - LEFT, size=10)
    w.gap()

    w.line(business_name or settings.BUSINESS_NAME, font="Helvetica-Bold")
    w.gap()

    w.line("Bill To:", font="Helvetica-Bold")
    w.line(str(customer.get("name", "")), x=INDENT)
    w.line(str(customer.get("email", "")), x=INDENT)
    if customer.get("phone"):
        w.line(str(customer["phone"]), x=INDENT)
    w.gap()

    w.line(f"Resource: {invoice.resource}")
    w.line(f"Type: {invoice.invoice_type}")
    w.gap()

    w.line("Description", font="Helvetica-Bold")
    w.y += LINE
    w.right("Amount", width - LEFT, font="Helvetica-Bold")
    for item in invoice.line_items:
        w.line(str(item.get("description", "")))
        w.y += LINE
        w.right(_money(item.get("unit_price", 0)), width - LEFT)
    w.gap()

    w.right(f"Subtotal: {_money(invoice.subtotal)}", width - LEFT)
    w.right(f"GST (10%): {_money(invoice.gst)}", width - LEFT)
    w.right(f"Total: {_money(invoice.total)}", width - LEFT, font="Helvetica-Bold", size=12)
    w.right(f"Paid: {_money(invoice.paid_amount)}", width - LEFT)
    w.right(f"Status: {invoice.status}", width - LEFT)

    if invoice.notes:
        w.gap()
        w.line("Notes:", font="Helvetica-Bold")
        w.line(invoice.notes, size=10)

    c.showPage()
    c.save()
    return buf.getvalue()
