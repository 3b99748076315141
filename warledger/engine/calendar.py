"""
warledger.engine.calendar — Week Windows & Reference Clock
===========================================================

Attendance is counted per *calendar* week, Sunday 00:00:00 through
Saturday 23:59:59, in one reference time zone shared by every member so
reports are comparable.  "Now" comes from an injected :class:`Clock`, never
from the wall clock directly, so tests can pin it.

Everything here is pure; no I/O.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, tzinfo
from zoneinfo import ZoneInfo

from warledger.errors import ValidationError

__all__ = [
    "Clock",
    "DEFAULT_TIMEZONE",
    "MAX_WEEKS_BACK",
    "MIN_WEEKS_BACK",
    "WeekPeriod",
    "trailing_weeks",
    "validate_weeks_back",
    "week_end",
    "week_start",
    "week_window",
]

DEFAULT_TIMEZONE = "America/New_York"

# Bounds enforced at the caller boundary (see validate_weeks_back).
MIN_WEEKS_BACK = 1
MAX_WEEKS_BACK = 52

_END_OF_DAY = time(23, 59, 59)


# ---------------------------------------------------------------------------
# Clock — injected source of "now" in the reference zone
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class Clock:
    """A time zone plus a callable returning the current instant."""

    tz: tzinfo
    now_fn: Callable[[tzinfo], datetime] = field(default=datetime.now)

    @classmethod
    def from_name(cls, name: str = DEFAULT_TIMEZONE) -> Clock:
        return cls(tz=ZoneInfo(name))

    @classmethod
    def fixed(cls, instant: datetime, tz: tzinfo | None = None) -> Clock:
        """A clock frozen at *instant* (handy for tests and backfills)."""
        zone = tz or instant.tzinfo or ZoneInfo(DEFAULT_TIMEZONE)
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=zone)
        return cls(tz=zone, now_fn=lambda _tz: instant)

    def now(self) -> datetime:
        return self.now_fn(self.tz).astimezone(self.tz)


# ---------------------------------------------------------------------------
# WeekPeriod
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class WeekPeriod:
    """One Sunday-anchored week.  ``end`` is always ``start + 6d 23:59:59``."""

    start: datetime
    end: datetime

    def days(self) -> list[date]:
        first = self.start.date()
        return [first + timedelta(days=offset) for offset in range(7)]

    def __str__(self) -> str:
        return f"{self.start:%Y-%m-%d} to {self.end:%Y-%m-%d}"


# ---------------------------------------------------------------------------
# Boundary math
# ---------------------------------------------------------------------------
def _localize(value: date | datetime, tz: tzinfo | None) -> datetime:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=tz) if tz is not None else value
        return value.astimezone(tz) if tz is not None else value
    return datetime.combine(value, time.min, tzinfo=tz)


def week_start(value: date | datetime, tz: tzinfo | None = None) -> datetime:
    """Return the Sunday on or before *value*, at midnight.

    If *tz* is given, *value* is interpreted in (or converted to) that zone
    first; a naive datetime with no *tz* stays naive.
    """
    moment = _localize(value, tz)
    # Python weekdays: Monday=0 … Sunday=6
    days_since_sunday = (moment.weekday() + 1) % 7
    sunday = moment - timedelta(days=days_since_sunday)
    return sunday.replace(hour=0, minute=0, second=0, microsecond=0)


def week_end(start: datetime) -> datetime:
    """Return ``start + 6 days`` at 23:59:59 (the last second of Saturday)."""
    saturday = start + timedelta(days=6)
    return saturday.replace(
        hour=_END_OF_DAY.hour,
        minute=_END_OF_DAY.minute,
        second=_END_OF_DAY.second,
        microsecond=0,
    )


def week_window(value: date | datetime, tz: tzinfo | None = None) -> WeekPeriod:
    start = week_start(value, tz)
    return WeekPeriod(start=start, end=week_end(start))


def trailing_weeks(n: int, clock: Clock) -> list[WeekPeriod]:
    """Return the last *n* calendar weeks, most recent first.

    Each window is computed independently from ``now - 7*i`` days, so the
    current (partial) week is always the first entry.
    """
    if n < 0:
        raise ValueError(f"n must be non-negative, got {n}")
    now = clock.now()
    return [week_window(now - timedelta(days=7 * i), clock.tz) for i in range(n)]


def validate_weeks_back(weeks_back: int) -> int:
    """Enforce the ``[1, 52]`` window accepted from callers."""
    if not MIN_WEEKS_BACK <= weeks_back <= MAX_WEEKS_BACK:
        raise ValidationError(
            f"weeks must be between {MIN_WEEKS_BACK} and {MAX_WEEKS_BACK}, got {weeks_back}",
            field="weeks_back",
            identifier=weeks_back,
        )
    return weeks_back
