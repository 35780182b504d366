"""
Slot arithmetic: HH:MM parsing, half-open interval overlap, the conflict scan
over a hall's active bookings, and the per-slot lock that serializes
check-then-insert.
"""

from __future__ import annotations

import asyncio
import re
from collections import defaultdict
from collections.abc import AsyncIterator, Hashable, Iterable
from contextlib import asynccontextmanager
from typing import Any, Protocol

TIME_RE = re.compile(r"^([0-1]?[0-9]|2[0-3]):([0-5][0-9])$")


class SlotLike(Protocol):
    start_time: str
    end_time: str


def is_valid_time(value: str) -> bool:
    return bool(TIME_RE.match(value))


def normalize_time(value: str) -> str:
    """'9:05' -> '09:05'. Raises ValueError on anything that isn't 24h H:MM."""
    m = TIME_RE.match(value.strip())
    if not m:
        raise ValueError("Invalid time format. Use HH:MM format")
    return f"{int(m.group(1)):02d}:{m.group(2)}"


def minutes_of_day(value: str) -> int:
    """Wall-clock minutes since midnight on a fixed reference day."""
    hours, minutes = normalize_time(value).split(":")
    return int(hours) * 60 + int(minutes)


def overlaps(start_a: str, end_a: str, start_b: str, end_b: str) -> bool:
    """True if [start_a, end_a) and [start_b, end_b) share any instant."""
    return minutes_of_day(start_a) < minutes_of_day(end_b) and minutes_of_day(
        end_a
    ) > minutes_of_day(start_b)


def find_conflict(
    existing: Iterable[Any],
    start_time: str,
    end_time: str,
    exclude_id: Any | None = None,
) -> Any | None:
    """
    Return the first booking in `existing` whose slot overlaps the candidate.

    Callers pass only active bookings for one (owner, hall, date); abutting
    slots (10:00-12:00 then 12:00-14:00) do not conflict.
    """
    for booking in existing:
        if exclude_id is not None and booking.id == exclude_id:
            continue
        if overlaps(start_time, end_time, booking.start_time, booking.end_time):
            return booking
    return None


def has_conflict(
    existing: Iterable[Any],
    start_time: str,
    end_time: str,
    exclude_id: Any | None = None,
) -> bool:
    return find_conflict(existing, start_time, end_time, exclude_id) is not None


class KeyedLock:
    """
    One asyncio.Lock per key, created on demand and dropped once nobody holds
    or waits on it. Serializes writers within a single process only.
    """

    def __init__(self) -> None:
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._waiters: dict[Hashable, int] = defaultdict(int)

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] += 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                self._locks.pop(key, None)

    def __len__(self) -> int:
        return len(self._locks)


# (hall_owner_id, hall_id, booking_date) -> lock
slot_locks = KeyedLock()
# (booking_id, invoice_type) -> lock
invoice_locks = KeyedLock()
