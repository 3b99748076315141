"""
warledger.engine.war_parser — War Result Parser
================================================

Turns raw tabular war results into a :class:`ParsedWar`.  Input shape::

    2026-01-29          ← row 1: the war date
    Alice,10,5          ← rows 2…: family_name, kills, deaths[, ignored…]
    Bob,3,1

The date may be ISO (``YYYY-MM-DD``) or the in-game screenshot form
(``DD-MM-YY``).  Columns past the third are ignored so newer exports with
extra stats still load.  Any bad row rejects the whole input; there is no
partial result.

Transcriptions produced by an upstream image-extraction step tend to
arrive wrapped in Markdown code fences with stray blank lines, so
:func:`normalize_transcript` strips those before the same rules apply.
"""

from __future__ import annotations

import csv
import io
import re
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime

from warledger.errors import ValidationError

__all__ = [
    "ParsedWar",
    "WarLineInput",
    "normalize_transcript",
    "parse_war_csv",
    "parse_war_date",
    "parse_war_rows",
]

# (pattern, strptime format) — tried in order
_DATE_FORMATS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"^\d{4}-\d{2}-\d{2}$"), "%Y-%m-%d"),
    (re.compile(r"^\d{2}-\d{2}-\d{2}$"), "%d-%m-%y"),
)
_COUNT_PATTERN = re.compile(r"^-?\d+$")
_FENCE_PREFIX = "```"

REQUIRED_FIELDS = 3


# ---------------------------------------------------------------------------
# Data contract
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class WarLineInput:
    name: str
    kills: int
    deaths: int


@dataclass(frozen=True, slots=True)
class ParsedWar:
    war_date: date
    lines: tuple[WarLineInput, ...]


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def normalize_transcript(text: str) -> str:
    """Drop code-fence lines and blank lines; trim what remains."""
    cleaned: list[str] = []
    for line in text.splitlines():
        trimmed = line.strip()
        if not trimmed or trimmed.startswith(_FENCE_PREFIX):
            continue
        cleaned.append(trimmed)
    return "\n".join(cleaned)


def parse_war_date(token: str, *, row: int = 1) -> date:
    """Parse the date row's token, or raise :class:`ValidationError`."""
    token = token.strip()
    for pattern, fmt in _DATE_FORMATS:
        if pattern.match(token):
            try:
                return datetime.strptime(token, fmt).date()
            except ValueError:
                break  # right shape, impossible day (e.g. 2026-02-30)
    raise ValidationError(
        f"invalid date {token!r} (expected YYYY-MM-DD or DD-MM-YY)",
        row=row,
        field="date",
    )


def parse_war_rows(rows: Iterable[str | list[str]]) -> ParsedWar:
    """Validate date-first rows and return the structured war.

    *rows* may be raw text lines (split on commas) or pre-split field
    lists, e.g. straight from :func:`csv.reader`.  Empty rows are skipped
    and not counted.
    """
    war_date: date | None = None
    lines: list[WarLineInput] = []
    row_num = 0

    for raw in rows:
        fields = _split(raw)
        if not any(f.strip() for f in fields):
            continue
        row_num += 1

        if war_date is None:
            war_date = parse_war_date(fields[0], row=row_num)
            continue

        lines.append(_parse_line(fields, row_num))

    if war_date is None:
        raise ValidationError("missing date line", row=1, field="date")
    if not lines:
        raise ValidationError("no war data found", field="lines")

    return ParsedWar(war_date=war_date, lines=tuple(lines))


def parse_war_csv(text: str, *, transcribed: bool = False) -> ParsedWar:
    """Parse CSV text.  Set *transcribed* for machine-extracted input."""
    if transcribed:
        text = normalize_transcript(text)
        if not text:
            raise ValidationError("transcript contained only formatting, no data", field="lines")
    reader = csv.reader(io.StringIO(text), skipinitialspace=True)
    return parse_war_rows(reader)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------
def _split(raw: str | list[str]) -> list[str]:
    if isinstance(raw, str):
        return next(csv.reader([raw], skipinitialspace=True), [])
    return list(raw)


def _parse_line(fields: list[str], row: int) -> WarLineInput:
    if len(fields) < REQUIRED_FIELDS:
        raise ValidationError(
            f"expected {REQUIRED_FIELDS} fields (family_name, kills, deaths), got {len(fields)}",
            row=row,
        )

    name = fields[0].strip()
    if not name:
        raise ValidationError("family_name cannot be empty", row=row, field="family_name")

    kills = _parse_count(fields[1], "kills", row)
    deaths = _parse_count(fields[2], "deaths", row)
    return WarLineInput(name=name, kills=kills, deaths=deaths)


def _parse_count(raw: str, field: str, row: int) -> int:
    token = raw.strip()
    if not _COUNT_PATTERN.match(token):
        raise ValidationError(f"invalid {field} value {token!r}", row=row, field=field)
    value = int(token)
    if value < 0:
        raise ValidationError(f"{field} cannot be negative (got {value})", row=row, field=field)
    return value
