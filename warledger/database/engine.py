"""
warledger.database.engine — Database Connection, Sessions & Async Bridge
=========================================================================

Every engine operation runs inside exactly one :func:`get_session` block:
one pooled connection, one transaction, commit on success, rollback on
any exception.  On PostgreSQL the block also sets a per-transaction
``statement_timeout`` so a stuck query fails cleanly (and retryably)
instead of holding the connection.

SQLAlchemy + psycopg2 is synchronous.  Hosts that live on an ``asyncio``
loop (a Discord bot, say) call :func:`run_db`, which ships the sync
function to a worker thread via :func:`asyncio.to_thread`.

Usage::

    from warledger.database.engine import create_db_engine, init_db, run_db

    engine = create_db_engine()          # reads DATABASE_URL from .env
    init_db(engine)                      # CREATE TABLE IF NOT EXISTS …

    # Inside an async handler:
    report = await run_db(check_all_members, engine, guild_id, 4, clock=clock)
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import ParamSpec, TypeVar

from dotenv import load_dotenv
from sqlalchemy import Engine, create_engine, text
from sqlalchemy.orm import Session

from warledger.database.models import Base
from warledger.errors import OperationTimeout

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


# ---------------------------------------------------------------------------
# Engine creation
# ---------------------------------------------------------------------------
def create_db_engine(url: str | None = None) -> Engine:
    """Build a SQLAlchemy :class:`Engine` from *url* or ``$DATABASE_URL``.

    The connection pool is sized for a single guild-management bot:
    * ``pool_size=5`` — five persistent connections.
    * ``max_overflow=10`` — up to 10 extra connections under load.
    * ``pool_timeout=10`` — fail after 10 s if no connection is available.
    * ``pool_recycle=3600`` — recycle connections after 1 hour.

    Raises
    ------
    RuntimeError
        If no URL is given and ``DATABASE_URL`` is not set.
    """
    load_dotenv()
    url = url or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set.  "
            "Copy .env.example → .env and set a valid PostgreSQL URL."
        )

    engine = create_engine(
        url,
        echo=False,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        pool_timeout=10,
        pool_recycle=3600,
    )
    logger.info("Database engine created → %s", engine.url.host)
    return engine


# ---------------------------------------------------------------------------
# Schema initialization
# ---------------------------------------------------------------------------
def init_db(engine: Engine) -> None:
    """Create all tables defined in :mod:`warledger.database.models`.

    .. note::

        In production the schema is managed by Alembic (``alembic upgrade
        head``).  ``create_all`` is kept for dev/test databases.
    """
    Base.metadata.create_all(engine)
    logger.info("Database tables verified / created.")


# ---------------------------------------------------------------------------
# Session helper
# ---------------------------------------------------------------------------
def _apply_statement_timeout(session: Session, timeout: float) -> None:
    if session.get_bind().dialect.name != "postgresql":
        return
    # SET LOCAL takes no bind parameters; the value is a validated int.
    millis = max(1, int(timeout * 1000))
    session.execute(text(f"SET LOCAL statement_timeout = {millis}"))


@contextmanager
def get_session(engine: Engine, *, timeout: float | None = None) -> Iterator[Session]:
    """Yield a :class:`Session` that commits on success and rolls back on
    exception.

    *timeout* (seconds) bounds every statement in the transaction on
    PostgreSQL; other dialects ignore it.

    Usage::

        with get_session(engine, timeout=30) as session:
            session.add(Member(guild_id=1, family_name="Alice"))
            # commit happens automatically on block exit
    """
    session = Session(engine, expire_on_commit=False)
    try:
        if timeout is not None:
            _apply_statement_timeout(session, timeout)
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# ---------------------------------------------------------------------------
# Async bridge
# ---------------------------------------------------------------------------
async def run_db(
    func: Callable[P, T],
    *args: P.args,
    **kwargs: P.kwargs,
) -> T:
    """Run a **synchronous** database function on a background thread.

    Pass ``run_timeout=<seconds>`` to bound the wait; on expiry
    :class:`OperationTimeout` is raised.  The worker thread is not
    interrupted, but the statement timeout set by :func:`get_session`
    will abort its transaction on PostgreSQL.
    """
    run_timeout = kwargs.pop("run_timeout", None)
    call = asyncio.to_thread(func, *args, **kwargs)
    if run_timeout is None:
        return await call
    try:
        return await asyncio.wait_for(call, timeout=run_timeout)
    except TimeoutError as exc:
        name = getattr(func, "__name__", repr(func))
        logger.warning("%s exceeded %.1fs", name, run_timeout)
        raise OperationTimeout(f"{name} timed out after {run_timeout}s") from exc
