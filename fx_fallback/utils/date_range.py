"""Helpers for normalising timestamps and generating year ranges."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterator, Tuple


@dataclass(frozen=True)
class DateRange:
    """Container representing a half-open ``[start, end)`` datetime window."""

    start: datetime
    end: datetime

    def as_tuple(self) -> Tuple[datetime, datetime]:
        """Return the range as a tuple of ``(start, end)``."""
        return (self.start, self.end)


def to_utc_naive(value: datetime | date) -> datetime:
    """Return ``value`` as a naive datetime expressed in UTC.

    Storage backends keep timestamps without tzinfo, so every aware value is
    converted to UTC first and plain dates become midnight.
    """

    if not isinstance(value, datetime):
        return datetime.combine(value, time.min)
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def from_unix_timestamp(value: int | float | str) -> datetime:
    """Convert a unix timestamp into a naive UTC datetime."""

    return datetime.fromtimestamp(float(value), tz=timezone.utc).replace(tzinfo=None)


def day_window(value: datetime | date) -> DateRange:
    """Return the calendar day containing ``value`` as a half-open window."""

    start = datetime.combine(to_utc_naive(value).date(), time.min)
    return DateRange(start=start, end=start + timedelta(days=1))


def year_range(start_year: int, end_year: int) -> Iterator[int]:
    """Yield every year between ``start_year`` and ``end_year`` inclusive."""

    if start_year > end_year:
        raise ValueError("start year must not be after end year")
    yield from range(start_year, end_year + 1)


def utc_now() -> datetime:
    """Return the current time as a naive UTC datetime."""

    return datetime.now(timezone.utc).replace(tzinfo=None)
