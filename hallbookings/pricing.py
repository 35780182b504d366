from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Protocol

from hallbookings.models import RateType
from hallbookings.slots import minutes_of_day

GST_RATE = Decimal("0.10")
FULL_DAY_HOURS = 8
HALF_DAY_FACTOR = Decimal("0.5")
CENTS = Decimal("0.01")


class RateCardLike(Protocol):
    rate_type: str
    weekday_rate: Decimal
    weekend_rate: Decimal


@dataclass(frozen=True)
class PriceQuote:
    amount: Decimal
    details: dict[str, Any] | None


NO_PRICE = PriceQuote(amount=Decimal("0"), details=None)


def money(value: Any) -> Decimal:
    """Coerce to Decimal and round half-up to cents."""
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


def gst(amount: Any) -> Decimal:
    return money(Decimal(str(amount)) * GST_RATE)


def with_gst(amount: Any) -> Decimal:
    subtotal = Decimal(str(amount))
    return money(subtotal + gst(subtotal))


def duration_hours(start_time: str, end_time: str) -> Decimal:
    minutes = minutes_of_day(end_time) - minutes_of_day(start_time)
    return Decimal(minutes) / Decimal(60)


def is_weekend(day: date) -> bool:
    return day.weekday() >= 5  # Saturday, Sunday


def compute_price(
    rate_card: RateCardLike,
    booking_date: date,
    start_time: str,
    end_time: str,
    estimated_price: Any | None = None,
) -> PriceQuote:
    """
    Price one slot from a rate card.

    Hourly cards charge the day's rate per (fractional) hour. Daily cards
    charge the full rate for 8 hours or more and half the rate below that.
    Weekend dates use weekend_rate.
    """
    hours = duration_hours(start_time, end_time)
    weekend = is_weekend(booking_date)
    weekday_rate = Decimal(str(rate_card.weekday_rate))
    weekend_rate = Decimal(str(rate_card.weekend_rate))
    rate = weekend_rate if weekend else weekday_rate

    if rate_card.rate_type == RateType.HOURLY:
        amount = rate * hours
        method = "hourly"
    else:
        amount = rate if hours >= FULL_DAY_HOURS else rate * HALF_DAY_FACTOR
        method = "daily"

    # floats keep the snapshot JSON-serializable
    details = {
        "rate_type": str(rate_card.rate_type),
        "weekday_rate": float(weekday_rate),
        "weekend_rate": float(weekend_rate),
        "applied_rate": float(rate),
        "duration_hours": float(hours),
        "is_weekend": weekend,
        "calculation_method": method,
        "frontend_estimated_price": estimated_price,
    }
    return PriceQuote(amount=money(amount), details=details)
