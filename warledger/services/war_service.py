"""
warledger.services.war_service — War Import, Removal & Stats
=============================================================

:func:`commit_war` is the one multi-table write in the engine.  A single
transaction covers:

    1. Insert a ``war_jobs`` row (who/where requested the import).
    2. Insert the ``wars`` row for the date, owned by the job.
    3. Reconcile reported names against the roster
       (:func:`reconcile_names`): match ignoring case and surrounding
       whitespace, and an
       unmatched name becomes a new active member.
    4. Insert one ``war_lines`` row per input line, keeping the reported
       name verbatim next to the resolved member id.
    5. Commit.

Any failure along the way rolls back everything, including members
created in step 3, and surfaces as one :class:`StorageError`.  Callers
never observe a half-imported war.

Members auto-created by an import are returned in
:attr:`ImportResult.auto_created`; war imports are a real path for
roster growth.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, date, datetime

from sqlalchemy import and_, case, distinct, func, select
from sqlalchemy.orm import Session

from warledger.database.engine import get_session
from warledger.database.models import (
    ImportSource,
    JobStatus,
    Member,
    MemberState,
    War,
    WarJob,
    WarLine,
    WarOutcome,
)
from warledger.engine.war_parser import WarLineInput
from warledger.errors import NotFoundError, StorageError, ValidationError, translate_db_errors

logger = logging.getLogger(__name__)

DEFAULT_IMPORT_TIMEOUT = 30.0
DEFAULT_READ_TIMEOUT = 10.0

_LABEL_PREFIX: dict[ImportSource, str] = {
    ImportSource.CSV: "CSV Import",
    ImportSource.SCREENSHOT: "Screenshot Import",
}


# ---------------------------------------------------------------------------
# Data contracts
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class ImportContext:
    """Who asked for the import, and from where."""

    requested_by: int | None = None
    channel_id: int | None = None
    message_id: int | None = None
    source: ImportSource = ImportSource.CSV


@dataclass(frozen=True, slots=True)
class AutoCreatedMember:
    member_id: int
    family_name: str


@dataclass(frozen=True, slots=True)
class Reconciliation:
    """Outcome of matching reported names to roster members."""

    member_ids: dict[str, int]  # keyed by _name_key(reported name)
    auto_created: list[AutoCreatedMember] = field(default_factory=list)

    def member_for(self, reported_name: str) -> int:
        return self.member_ids[_name_key(reported_name)]


@dataclass(frozen=True, slots=True)
class ImportResult:
    job_id: int
    war_id: int
    war_date: date
    line_count: int
    matched_count: int
    auto_created: list[AutoCreatedMember]


@dataclass(frozen=True, slots=True)
class WarStats:
    family_name: str
    total_wars: int
    most_recent_war: date | None
    total_kills: int
    total_deaths: int


def _name_key(name: str) -> str:
    return name.strip().lower()


# ---------------------------------------------------------------------------
# Reconciliation — explicit, separately testable pipeline step
# ---------------------------------------------------------------------------
def reconcile_names(session: Session, guild_id: int, names: Iterable[str]) -> Reconciliation:
    """Map each reported name to a member id, creating members as needed.

    Matching ignores case and surrounding whitespace and is otherwise
    exact, against every family name in the guild, inactive members
    included.  A name that appears twice in one import is only created
    once, under its trimmed spelling.
    """
    roster: dict[str, int] = {}
    rows = session.execute(
        select(Member.id, Member.family_name)
        .where(Member.guild_id == guild_id)
        .order_by(Member.id)
    ).all()
    for member_id, family_name in rows:
        roster.setdefault(_name_key(family_name), member_id)

    member_ids: dict[str, int] = {}
    auto_created: list[AutoCreatedMember] = []

    for name in names:
        key = _name_key(name)
        if key in member_ids:
            continue
        if key in roster:
            member_ids[key] = roster[key]
            continue

        created = _create_roster_member(session, guild_id, name.strip())
        roster[key] = created.id
        member_ids[key] = created.id
        auto_created.append(AutoCreatedMember(member_id=created.id, family_name=created.family_name))

    return Reconciliation(member_ids=member_ids, auto_created=auto_created)


def _create_roster_member(session: Session, guild_id: int, name: str) -> Member:
    member = Member(
        guild_id=guild_id,
        family_name=name,
        display_name=name,
        state=MemberState.ACTIVE,
    )
    session.add(member)
    session.flush()
    return member


def _insert_war_line(session: Session, war: War, line: WarLineInput, member_id: int | None) -> WarLine:
    war_line = WarLine(
        war_id=war.id,
        reported_name=line.name,
        member_id=member_id,
        kills=line.kills,
        deaths=line.deaths,
    )
    session.add(war_line)
    session.flush()
    return war_line


def _validate_lines(lines: Sequence[WarLineInput]) -> None:
    if not lines:
        raise ValidationError("no war data found", field="lines")
    for index, line in enumerate(lines, start=1):
        if not line.name.strip():
            raise ValidationError("family_name cannot be empty", row=index, field="family_name")
        if line.kills < 0 or line.deaths < 0:
            raise ValidationError("kills and deaths must be non-negative", row=index)


# ---------------------------------------------------------------------------
# Import
# ---------------------------------------------------------------------------
def commit_war(
    engine,
    guild_id: int,
    context: ImportContext,
    war_date: date,
    lines: Sequence[WarLineInput],
    outcome: WarOutcome | None = None,
    *,
    timeout: float = DEFAULT_IMPORT_TIMEOUT,
) -> ImportResult:
    """Persist a parsed war atomically.  See module docstring.

    Raises
    ------
    ValidationError
        If *lines* is empty or carries invalid values (nothing is written).
    StorageError
        On any database failure; the whole import was rolled back.
    OperationTimeout
        If the transaction exceeded *timeout*; also rolled back.
    """
    _validate_lines(lines)

    try:
        with translate_db_errors("war import"), get_session(engine, timeout=timeout) as session:
            now = datetime.now(UTC)
            job = WarJob(
                guild_id=guild_id,
                request_channel_id=context.channel_id,
                request_message_id=context.message_id,
                requested_by=context.requested_by,
                source=context.source,
                status=JobStatus.RUNNING,
                started_at=now,
            )
            session.add(job)
            session.flush()

            war = War(
                guild_id=guild_id,
                job_id=job.id,
                war_date=war_date,
                outcome=outcome,
                label=f"{_LABEL_PREFIX[context.source]} - {war_date:%Y-%m-%d}",
            )
            session.add(war)
            session.flush()

            reconciliation = reconcile_names(session, guild_id, (line.name for line in lines))

            for line in lines:
                _insert_war_line(session, war, line, reconciliation.member_for(line.name))

            job.status = JobStatus.DONE
            job.finished_at = datetime.now(UTC)

            result = ImportResult(
                job_id=job.id,
                war_id=war.id,
                war_date=war_date,
                line_count=len(lines),
                matched_count=len(lines) - _lines_for_created(lines, reconciliation),
                auto_created=list(reconciliation.auto_created),
            )
    except StorageError:
        logger.error(
            "War import for guild %d on %s rolled back (%d lines)",
            guild_id, war_date, len(lines),
        )
        raise

    logger.info(
        "Imported war %d (%s) for guild %d: %d lines, %d new members",
        result.war_id, war_date, guild_id, result.line_count, len(result.auto_created),
    )
    for created in result.auto_created:
        logger.warning(
            "War import auto-created member %d (%s) in guild %d",
            created.member_id, created.family_name, guild_id,
        )
    return result


def _lines_for_created(lines: Sequence[WarLineInput], reconciliation: Reconciliation) -> int:
    created = {c.member_id for c in reconciliation.auto_created}
    return sum(1 for line in lines if reconciliation.member_for(line.name) in created)


# ---------------------------------------------------------------------------
# Removal & exclusion
# ---------------------------------------------------------------------------
def _wars_on(session: Session, guild_id: int, war_date: date) -> list[War]:
    return list(
        session.scalars(
            select(War).where(War.guild_id == guild_id, War.war_date == war_date)
        ).all()
    )


def delete_war_by_date(engine, guild_id: int, war_date: date) -> int:
    """Delete every war on *war_date* (lines cascade).  Returns the count.

    The owning jobs are kept as the audit record of the import.

    Raises
    ------
    NotFoundError
        If no war exists for that date.
    StorageError
        On any database failure.
    """
    with translate_db_errors("war removal"), get_session(engine, timeout=DEFAULT_READ_TIMEOUT) as session:
        wars = _wars_on(session, guild_id, war_date)
        if not wars:
            raise NotFoundError(f"no war found on {war_date:%Y-%m-%d}", identifier=war_date.isoformat())
        for war in wars:
            session.delete(war)
        deleted = len(wars)

    logger.info("Deleted %d war(s) on %s for guild %d", deleted, war_date, guild_id)
    return deleted


def set_war_excluded(engine, guild_id: int, war_date: date, excluded: bool) -> int:
    """Flag wars on *war_date* as excluded from attendance and stats."""
    with translate_db_errors("war exclusion"), get_session(engine, timeout=DEFAULT_READ_TIMEOUT) as session:
        wars = _wars_on(session, guild_id, war_date)
        if not wars:
            raise NotFoundError(f"no war found on {war_date:%Y-%m-%d}", identifier=war_date.isoformat())
        for war in wars:
            war.is_excluded = excluded
        return len(wars)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def get_member_war_dates(session: Session, guild_id: int, member_id: int) -> list[date]:
    """Distinct dates of non-excluded wars in which *member_id* has a line."""
    stmt = (
        select(War.war_date)
        .join(WarLine, WarLine.war_id == War.id)
        .where(
            War.guild_id == guild_id,
            WarLine.member_id == member_id,
            War.is_excluded.is_(False),
        )
        .distinct()
        .order_by(War.war_date)
    )
    return list(session.scalars(stmt).all())


def get_war_stats(engine, guild_id: int) -> list[WarStats]:
    """Per active member totals over non-excluded wars, by family name.

    Members without any war line are included with zero totals.
    """
    counted = War.id.is_not(None)
    stmt = (
        select(
            Member.family_name,
            func.count(distinct(War.id)).label("total_wars"),
            func.max(War.war_date).label("most_recent_war"),
            func.coalesce(func.sum(case((counted, WarLine.kills), else_=0)), 0).label("kills"),
            func.coalesce(func.sum(case((counted, WarLine.deaths), else_=0)), 0).label("deaths"),
        )
        .select_from(Member)
        .outerjoin(WarLine, WarLine.member_id == Member.id)
        .outerjoin(War, and_(War.id == WarLine.war_id, War.is_excluded.is_(False)))
        .where(Member.guild_id == guild_id, Member.state == MemberState.ACTIVE)
        .group_by(Member.id, Member.family_name)
        .order_by(Member.family_name)
    )
    with translate_db_errors("war stats"), get_session(engine, timeout=DEFAULT_READ_TIMEOUT) as session:
        rows = session.execute(stmt).all()

    return [
        WarStats(
            family_name=row.family_name,
            total_wars=int(row.total_wars),
            most_recent_war=row.most_recent_war,
            total_kills=int(row.kills),
            total_deaths=int(row.deaths),
        )
        for row in rows
    ]
