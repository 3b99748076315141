"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

from datetime import UTC, date, datetime
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session

from warledger.database.models import Base, Member, MemberState, Vacation, War, WarJob, WarLine
from warledger.engine.calendar import Clock

GUILD_ID = 111222333
EASTERN = ZoneInfo("America/New_York")

_bigint_sqlite_registered = False


def _register_bigint_sqlite_compat():
    """Map BigInteger → INTEGER on SQLite so autoincrement works (idempotent)."""
    global _bigint_sqlite_registered
    if _bigint_sqlite_registered:
        return
    from sqlalchemy import BigInteger
    from sqlalchemy.ext.compiler import compiles

    @compiles(BigInteger, "sqlite")
    def _compile_bigint_as_integer(type_, compiler, **kw):
        return "INTEGER"

    _bigint_sqlite_registered = True


_register_bigint_sqlite_compat()


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all WarLedger tables.

    Uses StaticPool so every session shares the same in-memory database.
    """
    from sqlalchemy.pool import StaticPool

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def file_engine(tmp_path) -> Engine:
    """File-backed SQLite engine: one connection per thread, for pool tests."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'warledger.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def clock() -> Clock:
    """Pinned to Thursday 2026-01-29 12:00 US/Eastern."""
    return Clock.fixed(datetime(2026, 1, 29, 12, 0, tzinfo=EASTERN))


# ---------------------------------------------------------------------------
# Seed helpers (plain functions, usable from any test module)
# ---------------------------------------------------------------------------

def add_member(
    engine: Engine,
    family_name: str,
    *,
    guild_id: int = GUILD_ID,
    created_at: datetime | None = None,
    state: MemberState = MemberState.ACTIVE,
    mercenary: bool = False,
    external_id: int | None = None,
) -> int:
    with Session(engine) as session:
        member = Member(
            guild_id=guild_id,
            family_name=family_name,
            display_name=family_name,
            external_id=external_id,
            state=state,
            is_mercenary=mercenary,
            created_at=created_at or datetime(2025, 1, 1, tzinfo=UTC),
        )
        session.add(member)
        session.commit()
        return member.id


def add_vacation(engine: Engine, member_id: int, start: date, end: date, *, guild_id: int = GUILD_ID) -> None:
    with Session(engine) as session:
        session.add(Vacation(
            guild_id=guild_id,
            member_id=member_id,
            start_date=start,
            end_date=end,
        ))
        session.commit()


def add_war(
    engine: Engine,
    war_date: date,
    member_ids: list[int],
    *,
    guild_id: int = GUILD_ID,
    excluded: bool = False,
) -> int:
    """Insert a job + war with one 1/1 line per member id."""
    with Session(engine) as session:
        job = WarJob(guild_id=guild_id)
        session.add(job)
        session.flush()
        war = War(guild_id=guild_id, job_id=job.id, war_date=war_date, is_excluded=excluded)
        session.add(war)
        session.flush()
        for member_id in member_ids:
            session.add(WarLine(
                war_id=war.id,
                reported_name=f"member-{member_id}",
                member_id=member_id,
                kills=1,
                deaths=1,
            ))
        session.commit()
        return war.id
