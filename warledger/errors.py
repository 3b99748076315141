"""
warledger.errors — Typed Error Taxonomy
========================================

Every failure the engine reports to a caller is one of the classes below.
Each carries a machine-readable :class:`ErrorKind`, a human message and an
optional offending identifier, so callers can map errors to user-facing
text without string matching::

    try:
        commit_war(engine, guild_id, ctx, war_date, lines)
    except NotFoundError:
        ...
    except StorageError as exc:
        if exc.retryable:
            ...
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

logger = logging.getLogger(__name__)

# PostgreSQL SQLSTATE raised when ``statement_timeout`` cancels a query.
_PG_QUERY_CANCELED = "57014"


class ErrorKind(enum.StrEnum):
    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    NAME_COLLISION = "name_collision"
    STORAGE = "storage"
    TIMEOUT = "timeout"


class WarLedgerError(Exception):
    """Base class for all structured engine errors."""

    kind: ErrorKind = ErrorKind.STORAGE
    retryable: bool = False

    def __init__(self, message: str, *, identifier: str | int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.identifier = identifier

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "identifier": self.identifier,
            "retryable": self.retryable,
        }


class NotFoundError(WarLedgerError):
    """A member or war the caller referenced does not exist."""

    kind = ErrorKind.NOT_FOUND


class ValidationError(WarLedgerError):
    """Malformed input. Never retryable: the same input fails the same way.

    ``row`` is the 1-based row number for tabular input, ``field`` the
    offending column or parameter name.
    """

    kind = ErrorKind.VALIDATION

    def __init__(
        self,
        message: str,
        *,
        row: int | None = None,
        field: str | None = None,
        identifier: str | int | None = None,
    ) -> None:
        if row is not None:
            message = f"row {row}: {message}"
        super().__init__(message, identifier=identifier if identifier is not None else row)
        self.row = row
        self.field = field

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["row"] = self.row
        payload["field"] = self.field
        return payload


class NameCollisionError(WarLedgerError):
    """A family name already exists in the guild roster."""

    kind = ErrorKind.NAME_COLLISION


class StorageError(WarLedgerError):
    """Transport or transaction failure. The transaction was rolled back."""

    kind = ErrorKind.STORAGE
    retryable = True


class OperationTimeout(StorageError):
    """The operation exceeded its time budget and was rolled back."""

    kind = ErrorKind.TIMEOUT


def _is_query_canceled(exc: SQLAlchemyError) -> bool:
    orig = getattr(exc, "orig", None)
    return getattr(orig, "pgcode", None) == _PG_QUERY_CANCELED


@contextmanager
def translate_db_errors(operation: str) -> Iterator[None]:
    """Re-raise SQLAlchemy failures as :class:`StorageError` subclasses.

    Domain errors raised inside the block pass through untouched.
    """
    try:
        yield
    except WarLedgerError:
        raise
    except PoolTimeoutError as exc:
        logger.warning("%s: connection pool timeout: %s", operation, exc)
        raise OperationTimeout(f"{operation} timed out waiting for a connection") from exc
    except SQLAlchemyError as exc:
        if _is_query_canceled(exc):
            logger.warning("%s: statement timeout: %s", operation, exc)
            raise OperationTimeout(f"{operation} timed out") from exc
        logger.error("%s failed: %s", operation, exc)
        raise StorageError(f"{operation} failed") from exc
