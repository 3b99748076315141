"""
warledger.services.roster_service — Roster Lookups & Mutations
===============================================================

Members are addressed through an explicit :data:`MemberRef` union rather
than a pair of optional fields::

    resolve_member(session, guild_id, ByExternalId(1234))
    resolve_member(session, guild_id, ByName("Alice"), include=Inclusion.ALL)

Callers holding both an external id and a name build the ref with
:func:`member_ref`, which applies the precedence rule in one place:
external id first, then family name.

Every query that can see inactive members takes an :class:`Inclusion`
policy instead of having a separate "including inactive" twin.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass

from sqlalchemy import Select, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from warledger.database.engine import get_session
from warledger.database.models import Member, MemberState
from warledger.errors import (
    NameCollisionError,
    NotFoundError,
    ValidationError,
    translate_db_errors,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Lookup keys
# ---------------------------------------------------------------------------
class Inclusion(enum.Enum):
    ACTIVE_ONLY = "active_only"
    ALL = "all"


@dataclass(frozen=True, slots=True)
class ByExternalId:
    external_id: int


@dataclass(frozen=True, slots=True)
class ByName:
    family_name: str


MemberRef = ByExternalId | ByName


def member_ref(external_id: int | None = None, family_name: str | None = None) -> MemberRef:
    """Build a :data:`MemberRef`; the external id wins when both are given."""
    if external_id is not None:
        return ByExternalId(external_id)
    if family_name is not None and family_name.strip():
        return ByName(family_name.strip())
    raise ValidationError("a member id or family name is required", field="member")


def _apply_inclusion(stmt: Select, include: Inclusion) -> Select:
    if include is Inclusion.ACTIVE_ONLY:
        return stmt.where(Member.state == MemberState.ACTIVE)
    return stmt


def _describe(ref: MemberRef) -> str:
    match ref:
        case ByExternalId(external_id=external_id):
            return f"user {external_id}"
        case ByName(family_name=name):
            return f"family name {name!r}"
    raise TypeError(f"unsupported member ref: {ref!r}")


# ---------------------------------------------------------------------------
# Reads (session-scoped so other services can compose them)
# ---------------------------------------------------------------------------
def find_member(
    session: Session,
    guild_id: int,
    ref: MemberRef,
    include: Inclusion = Inclusion.ACTIVE_ONLY,
) -> Member | None:
    stmt = select(Member).where(Member.guild_id == guild_id)
    match ref:
        case ByExternalId(external_id=external_id):
            stmt = stmt.where(Member.external_id == external_id)
        case ByName(family_name=name):
            stmt = stmt.where(Member.family_name == name)
        case _:
            raise TypeError(f"unsupported member ref: {ref!r}")
    return session.scalar(_apply_inclusion(stmt, include).limit(1))


def resolve_member(
    session: Session,
    guild_id: int,
    ref: MemberRef,
    include: Inclusion = Inclusion.ACTIVE_ONLY,
) -> Member:
    """Like :func:`find_member` but raises :class:`NotFoundError`."""
    member = find_member(session, guild_id, ref, include)
    if member is None:
        raise NotFoundError(
            f"no {'' if include is Inclusion.ALL else 'active '}member with {_describe(ref)}",
            identifier=getattr(ref, "external_id", None) or getattr(ref, "family_name", None),
        )
    return member


def get_member_by_id(
    session: Session,
    guild_id: int,
    member_id: int,
    include: Inclusion = Inclusion.ACTIVE_ONLY,
) -> Member:
    stmt = select(Member).where(Member.id == member_id, Member.guild_id == guild_id)
    member = session.scalar(_apply_inclusion(stmt, include))
    if member is None:
        raise NotFoundError(f"member {member_id} not found", identifier=member_id)
    return member


def list_members(
    engine,
    guild_id: int,
    *,
    include: Inclusion = Inclusion.ACTIVE_ONLY,
    mercenaries: bool = True,
) -> list[Member]:
    """Members of *guild_id* ordered by family name (detached)."""
    with translate_db_errors("list members"), get_session(engine) as session:
        return select_members(session, guild_id, include=include, mercenaries=mercenaries)


def select_members(
    session: Session,
    guild_id: int,
    *,
    include: Inclusion = Inclusion.ACTIVE_ONLY,
    mercenaries: bool = True,
) -> list[Member]:
    stmt = select(Member).where(Member.guild_id == guild_id)
    if not mercenaries:
        stmt = stmt.where(Member.is_mercenary.is_(False))
    stmt = _apply_inclusion(stmt, include).order_by(Member.family_name)
    return list(session.scalars(stmt).all())


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------
def _ensure_name_free(
    session: Session, guild_id: int, family_name: str, *, exclude_id: int | None = None
) -> None:
    stmt = select(Member.id).where(
        Member.guild_id == guild_id,
        func.lower(Member.family_name) == func.lower(family_name),
    )
    if exclude_id is not None:
        stmt = stmt.where(Member.id != exclude_id)
    if session.scalar(stmt.limit(1)) is not None:
        raise NameCollisionError(
            f"family name {family_name!r} is already on the roster",
            identifier=family_name,
        )


def create_member(
    engine,
    guild_id: int,
    family_name: str,
    *,
    external_id: int | None = None,
    display_name: str | None = None,
    class_name: str | None = None,
    spec: str | None = None,
) -> Member:
    """Insert a new active member.

    Raises
    ------
    ValidationError
        If *family_name* is blank.
    NameCollisionError
        If the guild already has a member with that family name, in
        any letter case.
    """
    family_name = family_name.strip()
    if not family_name:
        raise ValidationError("family_name cannot be empty", field="family_name")

    member = Member(
        guild_id=guild_id,
        external_id=external_id,
        family_name=family_name,
        display_name=display_name or family_name,
        class_name=class_name,
        spec=spec,
        state=MemberState.ACTIVE,
    )
    with translate_db_errors("create member"):
        try:
            with get_session(engine) as session:
                _ensure_name_free(session, guild_id, family_name)
                session.add(member)
                session.flush()
        except IntegrityError as exc:
            raise NameCollisionError(
                f"family name {family_name!r} is already on the roster",
                identifier=family_name,
            ) from exc

    logger.info("Created member %d (%s) in guild %d", member.id, family_name, guild_id)
    return member


def rename_member(engine, guild_id: int, ref: MemberRef, new_family_name: str) -> Member:
    """Change a member's family name.  Past war lines keep their old link."""
    new_family_name = new_family_name.strip()
    if not new_family_name:
        raise ValidationError("family_name cannot be empty", field="family_name")

    with translate_db_errors("rename member"):
        try:
            with get_session(engine) as session:
                member = resolve_member(session, guild_id, ref, Inclusion.ALL)
                _ensure_name_free(session, guild_id, new_family_name, exclude_id=member.id)
                member.family_name = new_family_name
                session.flush()
        except IntegrityError as exc:
            raise NameCollisionError(
                f"family name {new_family_name!r} is already on the roster",
                identifier=new_family_name,
            ) from exc
    return member


def set_member_state(engine, guild_id: int, ref: MemberRef, state: MemberState) -> Member:
    """Activate or soft-delete a member."""
    with translate_db_errors("set member state"), get_session(engine) as session:
        member = resolve_member(session, guild_id, ref, Inclusion.ALL)
        if member.state != state:
            logger.info(
                "Member %d (%s): %s → %s",
                member.id, member.family_name, member.state, state,
            )
            member.state = state
    return member


def set_mercenary(engine, guild_id: int, ref: MemberRef, mercenary: bool) -> Member:
    """Mercenaries stay on the roster but are left out of attendance."""
    with translate_db_errors("set mercenary"), get_session(engine) as session:
        member = resolve_member(session, guild_id, ref, Inclusion.ALL)
        member.is_mercenary = mercenary
    return member
