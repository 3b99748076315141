"""
warledger.services.vacation_service — Vacation Records
=======================================================

Vacations are written once by an officer and only ever read afterwards
(attendance excusal).  There is no update path.
"""

from __future__ import annotations

import logging
from datetime import date

from sqlalchemy import select
from sqlalchemy.orm import Session

from warledger.database.engine import get_session
from warledger.database.models import Vacation
from warledger.errors import ValidationError, translate_db_errors
from warledger.services.roster_service import Inclusion, get_member_by_id

logger = logging.getLogger(__name__)


def create_vacation(
    engine,
    guild_id: int,
    member_id: int,
    start_date: date,
    end_date: date,
    *,
    created_by: int | None = None,
    reason: str | None = None,
) -> Vacation:
    """Record an inclusive ``[start_date, end_date]`` absence.

    Inactive members may still be given vacations.

    Raises
    ------
    ValidationError
        If *end_date* is before *start_date*.
    NotFoundError
        If the member is not on this guild's roster.
    """
    if end_date < start_date:
        raise ValidationError(
            f"end date {end_date} is before start date {start_date}",
            field="end_date",
        )

    with translate_db_errors("create vacation"), get_session(engine) as session:
        get_member_by_id(session, guild_id, member_id, Inclusion.ALL)
        vacation = Vacation(
            guild_id=guild_id,
            member_id=member_id,
            start_date=start_date,
            end_date=end_date,
            reason=(reason or "").strip() or None,
            created_by=created_by,
        )
        session.add(vacation)
        session.flush()

    logger.info(
        "Vacation %d for member %d: %s → %s", vacation.id, member_id, start_date, end_date
    )
    return vacation


def get_member_vacations(session: Session, member_id: int) -> list[Vacation]:
    """All vacations for *member_id*, ordered by start date."""
    return list(
        session.scalars(
            select(Vacation)
            .where(Vacation.member_id == member_id)
            .order_by(Vacation.start_date, Vacation.id)
        ).all()
    )


def list_member_vacations(engine, guild_id: int, member_id: int) -> list[Vacation]:
    """Detached variant of :func:`get_member_vacations` for callers."""
    with translate_db_errors("list vacations"), get_session(engine) as session:
        get_member_by_id(session, guild_id, member_id, Inclusion.ALL)
        return get_member_vacations(session, member_id)
