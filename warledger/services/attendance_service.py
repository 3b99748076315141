"""
warledger.services.attendance_service — Attendance Compliance
==============================================================

For each of the last N calendar weeks a member is expected to appear in
at least one non-excluded war.  Per week, in order:

    1. Week started before the member joined   → not counted at all.
    2. Week fully covered by one vacation       → counted, excused.
    3. Member has a war line during the week    → counted, attended.
    4. Otherwise                                → counted, missed.

``attended_weeks`` is therefore ``total_weeks - len(missed_weeks)`` and
includes excused weeks.

A member joining exactly at a week's start (Sunday 00:00:00 in the
reference zone) owes that week; one joining any later instant does not.

:func:`check_all_members` favours availability: one member whose data
fails to load is logged and left out rather than sinking the report.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import UTC, datetime

from sqlalchemy import Engine
from sqlalchemy.orm import Session

from warledger.database.engine import get_session
from warledger.database.models import Member
from warledger.engine.calendar import Clock, WeekPeriod, trailing_weeks
from warledger.engine.participation import ParticipationIndex
from warledger.engine.vacation import VacationSpan, is_fully_excused
from warledger.errors import WarLedgerError, translate_db_errors
from warledger.services.roster_service import Inclusion, get_member_by_id, select_members
from warledger.services.vacation_service import get_member_vacations
from warledger.services.war_service import DEFAULT_READ_TIMEOUT, get_member_war_dates

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result record
# ---------------------------------------------------------------------------
@dataclass(slots=True)
class MemberAttendance:
    member_id: int
    family_name: str
    created_at: datetime
    missed_weeks: list[WeekPeriod] = field(default_factory=list)
    total_weeks: int = 0
    attended_weeks: int = 0

    @property
    def has_attendance_issue(self) -> bool:
        return has_attendance_issue(self)


def has_attendance_issue(record: MemberAttendance) -> bool:
    return len(record.missed_weeks) > 0


def members_with_issues(records: Iterable[MemberAttendance]) -> list[MemberAttendance]:
    return [record for record in records if has_attendance_issue(record)]


# ---------------------------------------------------------------------------
# Pure evaluation
# ---------------------------------------------------------------------------
def _as_aware(value: datetime) -> datetime:
    # SQLite drops tzinfo; stored timestamps are UTC.
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


def evaluate_attendance(
    member_id: int,
    family_name: str,
    created_at: datetime,
    weeks: Iterable[WeekPeriod],
    vacations: Iterable[VacationSpan],
    participation: ParticipationIndex,
) -> MemberAttendance:
    """Apply the weekly rules to already-loaded data."""
    joined = _as_aware(created_at)
    vacations = list(vacations)
    record = MemberAttendance(member_id=member_id, family_name=family_name, created_at=joined)

    for week in weeks:
        if week.start < joined:
            continue
        record.total_weeks += 1
        if is_fully_excused(week, vacations):
            continue
        if not participation.participated(week):
            record.missed_weeks.append(week)

    record.attended_weeks = record.total_weeks - len(record.missed_weeks)
    return record


# ---------------------------------------------------------------------------
# Service entry points
# ---------------------------------------------------------------------------
def _check_loaded_member(
    session: Session, guild_id: int, member: Member, weeks: list[WeekPeriod]
) -> MemberAttendance:
    vacations = get_member_vacations(session, member.id)
    war_dates = get_member_war_dates(session, guild_id, member.id)
    return evaluate_attendance(
        member.id,
        member.family_name,
        member.created_at,
        weeks,
        vacations,
        ParticipationIndex(war_dates),
    )


def check_member(
    engine: Engine,
    guild_id: int,
    member_id: int,
    weeks_back: int,
    *,
    clock: Clock,
    timeout: float = DEFAULT_READ_TIMEOUT,
) -> MemberAttendance:
    """Attendance for one active member over the last *weeks_back* weeks.

    Raises
    ------
    NotFoundError
        If the member is absent from the guild or inactive.
    StorageError
        On database failure.
    """
    weeks = trailing_weeks(weeks_back, clock)
    with translate_db_errors("attendance check"), get_session(engine, timeout=timeout) as session:
        member = get_member_by_id(session, guild_id, member_id, Inclusion.ACTIVE_ONLY)
        return _check_loaded_member(session, guild_id, member, weeks)


def check_all_members(
    engine: Engine,
    guild_id: int,
    weeks_back: int,
    *,
    clock: Clock,
    max_workers: int = 1,
    timeout: float = DEFAULT_READ_TIMEOUT,
) -> list[MemberAttendance]:
    """Attendance for every active, non-mercenary member, by family name.

    With ``max_workers > 1`` members are checked on a bounded thread pool
    (one pooled connection each); result order is unchanged.
    """
    with translate_db_errors("attendance roster"), get_session(engine, timeout=timeout) as session:
        member_ids = [
            m.id
            for m in select_members(
                session, guild_id, include=Inclusion.ACTIVE_ONLY, mercenaries=False
            )
        ]

    def _one(member_id: int) -> MemberAttendance | None:
        try:
            return check_member(
                engine, guild_id, member_id, weeks_back, clock=clock, timeout=timeout
            )
        except WarLedgerError as exc:
            logger.warning(
                "Attendance check failed for member %d in guild %d: %s",
                member_id, guild_id, exc,
            )
            return None
        except Exception:
            logger.exception(
                "Unexpected error checking member %d in guild %d", member_id, guild_id
            )
            return None

    if max_workers > 1 and len(member_ids) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            outcomes = list(executor.map(_one, member_ids))
    else:
        outcomes = [_one(member_id) for member_id in member_ids]

    results = [record for record in outcomes if record is not None]
    if len(results) < len(member_ids):
        logger.warning(
            "Attendance report for guild %d omitted %d of %d members",
            guild_id, len(member_ids) - len(results), len(member_ids),
        )
    return results
