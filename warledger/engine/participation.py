"""
warledger.engine.participation — War-Participation Index
=========================================================

Wraps a member's war dates in a set so each week is answered with seven
lookups instead of a scan over every war.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, datetime

from warledger.engine.calendar import WeekPeriod


class ParticipationIndex:
    """Set of calendar dates on which a member has a non-excluded war line."""

    __slots__ = ("_dates",)

    def __init__(self, dates: Iterable[date | datetime] = ()) -> None:
        self._dates: frozenset[date] = frozenset(
            d.date() if isinstance(d, datetime) else d for d in dates
        )

    def __len__(self) -> int:
        return len(self._dates)

    def __contains__(self, day: object) -> bool:
        return day in self._dates

    def participated(self, week: WeekPeriod) -> bool:
        return any(day in self._dates for day in week.days())
