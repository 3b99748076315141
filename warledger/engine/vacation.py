"""
warledger.engine.vacation — Full-Week Vacation Excusal
=======================================================

A week is excused only when a single vacation covers *all* of it.  A
member who is away three days of seven is still expected to show up on
the other four, so partial overlap never excuses.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, datetime
from typing import Protocol

from warledger.engine.calendar import WeekPeriod


class VacationSpan(Protocol):
    """Anything with inclusive ``start_date`` / ``end_date`` bounds."""

    start_date: date
    end_date: date


def _as_date(value: date | datetime) -> date:
    return value.date() if isinstance(value, datetime) else value


def covers_week(vacation: VacationSpan, week: WeekPeriod) -> bool:
    # Vacation bounds are inclusive calendar days.
    return (
        _as_date(vacation.start_date) <= week.start.date()
        and _as_date(vacation.end_date) >= week.end.date()
    )


def is_fully_excused(week: WeekPeriod, vacations: Iterable[VacationSpan]) -> bool:
    """True if at least one vacation spans the whole of *week*."""
    return any(covers_week(vacation, week) for vacation in vacations)
