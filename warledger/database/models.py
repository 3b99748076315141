"""
warledger.database.models — SQLAlchemy 2.0 Data Models
=======================================================

Tables:
- members     — Guild roster (soft-deleted via ``state``)
- vacations   — Approved absence intervals, owned by a member
- war_jobs    — Audit trail of who imported which war, and when
- wars        — One dated war per import, owned by its job
- war_lines   — Per-name kills/deaths, owned by a war
"""

from __future__ import annotations

import enum
from datetime import UTC, date, datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    TypeDecorator,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all WarLedger ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class MemberState(enum.StrEnum):
    """Roster lifecycle.  Members are never hard-deleted."""
    ACTIVE = "active"
    INACTIVE = "inactive"


class WarOutcome(enum.StrEnum):
    WIN = "win"
    LOSE = "lose"


class ImportSource(enum.StrEnum):
    """Where an imported war's rows came from."""
    CSV = "csv"
    SCREENSHOT = "screenshot"


class JobStatus(enum.StrEnum):
    RUNNING = "running"
    DONE = "done"


def _values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


def _utcnow() -> datetime:
    return datetime.now(UTC)


class UTCDateTime(TypeDecorator):
    """Timezone-aware timestamp stored and returned as UTC.

    Naive values are taken to be UTC already.  SQLite has no zone
    support, so results are re-tagged on the way out.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


# ---------------------------------------------------------------------------
# Members — one row per roster entry
# ---------------------------------------------------------------------------
class Member(Base):
    __tablename__ = "members"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    guild_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    external_id: Mapped[int | None] = mapped_column(BigInteger, default=None)  # Discord user
    family_name: Mapped[str] = mapped_column(String(100), nullable=False)
    display_name: Mapped[str | None] = mapped_column(String(100), default=None)
    class_name: Mapped[str | None] = mapped_column(String(50), default=None)
    spec: Mapped[str | None] = mapped_column(String(50), default=None)

    # Combat stats
    ap: Mapped[int | None] = mapped_column(Integer, default=None)
    aap: Mapped[int | None] = mapped_column(Integer, default=None)
    dp: Mapped[int | None] = mapped_column(Integer, default=None)

    state: Mapped[MemberState] = mapped_column(
        Enum(MemberState, name="member_state_enum", values_callable=_values),
        default=MemberState.ACTIVE,
        nullable=False,
    )
    is_mercenary: Mapped[bool] = mapped_column(Boolean, default=False)
    is_exception: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), default=_utcnow, server_default=func.now()
    )

    vacations: Mapped[list[Vacation]] = relationship(
        back_populates="member",
        cascade="all, delete-orphan",
        order_by="Vacation.start_date",
    )

    __table_args__ = (
        Index("ix_members_guild_external", "guild_id", "external_id"),
        Index("ix_members_guild_state", "guild_id", "state"),
    )

    @property
    def is_active(self) -> bool:
        return self.state == MemberState.ACTIVE

    def __repr__(self) -> str:
        return f"<Member id={self.id} family={self.family_name!r} state={self.state}>"


# Family names are unique per guild ignoring case; imports match that way.
Index(
    "uq_members_guild_family_lower",
    Member.guild_id,
    func.lower(Member.family_name),
    unique=True,
)


# ---------------------------------------------------------------------------
# Vacations — inclusive date intervals, immutable once written
# ---------------------------------------------------------------------------
class Vacation(Base):
    __tablename__ = "vacations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    guild_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    member_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("members.id", ondelete="CASCADE"), nullable=False
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, default=None)
    created_by: Mapped[int | None] = mapped_column(BigInteger, default=None)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), default=_utcnow, server_default=func.now()
    )

    member: Mapped[Member] = relationship(back_populates="vacations")

    __table_args__ = (
        CheckConstraint("end_date >= start_date", name="ck_vacations_range"),
        Index("ix_vacations_member_start", "member_id", "start_date"),
    )

    def __repr__(self) -> str:
        return f"<Vacation member={self.member_id} {self.start_date}..{self.end_date}>"


# ---------------------------------------------------------------------------
# WarJob — one per import request (audit trail)
# ---------------------------------------------------------------------------
class WarJob(Base):
    __tablename__ = "war_jobs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    guild_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    request_channel_id: Mapped[int | None] = mapped_column(BigInteger, default=None)
    request_message_id: Mapped[int | None] = mapped_column(BigInteger, default=None)
    requested_by: Mapped[int | None] = mapped_column(BigInteger, default=None)
    source: Mapped[ImportSource] = mapped_column(
        Enum(ImportSource, name="import_source_enum", values_callable=_values),
        default=ImportSource.CSV,
        nullable=False,
    )
    status: Mapped[JobStatus] = mapped_column(
        Enum(JobStatus, name="job_status_enum", values_callable=_values),
        default=JobStatus.RUNNING,
        nullable=False,
    )
    started_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), default=None)
    finished_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), default=None)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), default=_utcnow, server_default=func.now()
    )

    war: Mapped[War | None] = relationship(
        back_populates="job", uselist=False, cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<WarJob id={self.id} guild={self.guild_id} status={self.status}>"


# ---------------------------------------------------------------------------
# Wars
# ---------------------------------------------------------------------------
class War(Base):
    __tablename__ = "wars"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    guild_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    job_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("war_jobs.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    war_date: Mapped[date] = mapped_column(Date, nullable=False)
    outcome: Mapped[WarOutcome | None] = mapped_column(
        Enum(WarOutcome, name="war_outcome_enum", values_callable=_values),
        default=None,
    )
    label: Mapped[str | None] = mapped_column(String(200), default=None)
    is_excluded: Mapped[bool] = mapped_column(Boolean, default=False)

    job: Mapped[WarJob] = relationship(back_populates="war")
    lines: Mapped[list[WarLine]] = relationship(
        back_populates="war", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_wars_guild_date", "guild_id", "war_date"),
    )

    def __repr__(self) -> str:
        return f"<War id={self.id} date={self.war_date} excluded={self.is_excluded}>"


# ---------------------------------------------------------------------------
# WarLines — reported name kept verbatim; member link resolved at write time
# ---------------------------------------------------------------------------
class WarLine(Base):
    __tablename__ = "war_lines"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    war_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("wars.id", ondelete="CASCADE"), nullable=False
    )
    reported_name: Mapped[str] = mapped_column(String(100), nullable=False)
    member_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("members.id", ondelete="SET NULL"), default=None
    )
    kills: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    deaths: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    war: Mapped[War] = relationship(back_populates="lines")

    __table_args__ = (
        CheckConstraint("kills >= 0", name="ck_war_lines_kills"),
        CheckConstraint("deaths >= 0", name="ck_war_lines_deaths"),
        Index("ix_war_lines_member", "member_id"),
        Index("ix_war_lines_war", "war_id"),
    )

    def __repr__(self) -> str:
        return f"<WarLine war={self.war_id} name={self.reported_name!r} member={self.member_id}>"
