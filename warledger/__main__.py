"""
warledger.__main__ — Officer Maintenance CLI
=============================================

Run with ``python -m warledger <command>``.  The chat bot is the normal
caller of the engine; this entry point covers the jobs an officer does
from a shell: creating the schema, importing a war export that arrived
as a file, undoing a bad import and printing attendance or war stats.

    python -m warledger init-db
    python -m warledger import-war war.csv --guild 1234
    python -m warledger attendance --guild 1234 --weeks 4 --issues-only
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv
from sqlalchemy import Engine

from warledger.config import WarLedgerConfig, load_config
from warledger.database.engine import create_db_engine, init_db
from warledger.database.models import ImportSource, WarOutcome
from warledger.engine.calendar import validate_weeks_back
from warledger.engine.war_parser import parse_war_csv, parse_war_date
from warledger.errors import WarLedgerError
from warledger.logging_setup import configure_logging
from warledger.services.attendance_service import check_all_members, members_with_issues
from warledger.services.war_service import (
    ImportContext,
    commit_war,
    delete_war_by_date,
    get_war_stats,
    set_war_excluded,
)

logger = logging.getLogger("warledger")


# ---------------------------------------------------------------------------
# Commands — each returns a process exit code
# ---------------------------------------------------------------------------
def cmd_init_db(args, engine: Engine, cfg: WarLedgerConfig) -> int:
    init_db(engine)
    print("Schema ready.")
    return 0


def cmd_import_war(args, engine: Engine, cfg: WarLedgerConfig) -> int:
    path = Path(args.path)
    if not path.exists():
        print(f"File not found: {path}", file=sys.stderr)
        return 1

    parsed = parse_war_csv(path.read_text(encoding="utf-8"), transcribed=args.transcribed)
    context = ImportContext(
        requested_by=args.requested_by,
        source=ImportSource.SCREENSHOT if args.transcribed else ImportSource.CSV,
    )
    outcome = WarOutcome(args.outcome) if args.outcome else None
    result = commit_war(
        engine, args.guild, context, parsed.war_date, parsed.lines, outcome,
        timeout=cfg.import_timeout_seconds,
    )

    print(f"Imported war {result.war_id} on {result.war_date}: "
          f"{result.line_count} lines, {result.matched_count} matched")
    for created in result.auto_created:
        print(f"  new member: {created.family_name} (id {created.member_id})")
    return 0


def cmd_remove_war(args, engine: Engine, cfg: WarLedgerConfig) -> int:
    war_date = parse_war_date(args.date)
    deleted = delete_war_by_date(engine, args.guild, war_date)
    print(f"Removed {deleted} war(s) on {war_date}.")
    return 0


def cmd_exclude_war(args, engine: Engine, cfg: WarLedgerConfig) -> int:
    war_date = parse_war_date(args.date)
    changed = set_war_excluded(engine, args.guild, war_date, not args.undo)
    state = "included in" if args.undo else "excluded from"
    print(f"{changed} war(s) on {war_date} now {state} attendance and stats.")
    return 0


def cmd_attendance(args, engine: Engine, cfg: WarLedgerConfig) -> int:
    weeks = args.weeks if args.weeks is not None else cfg.default_weeks
    weeks_back = validate_weeks_back(weeks)
    records = check_all_members(
        engine, args.guild, weeks_back,
        clock=cfg.clock(),
        max_workers=cfg.attendance_workers,
        timeout=cfg.read_timeout_seconds,
    )
    if args.issues_only:
        records = members_with_issues(records)

    for record in records:
        print(f"{record.family_name:<20} {record.attended_weeks}/{record.total_weeks}")
        for week in record.missed_weeks:
            print(f"    missed {week}")
    return 0


def cmd_stats(args, engine: Engine, cfg: WarLedgerConfig) -> int:
    for row in get_war_stats(engine, args.guild):
        last = row.most_recent_war.isoformat() if row.most_recent_war else "-"
        print(f"{row.family_name:<20} wars={row.total_wars:<4} "
              f"K={row.total_kills:<5} D={row.total_deaths:<5} last={last}")
    return 0


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------
def build_argparser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="warledger", description="Guild war attendance ledger")
    p.add_argument("--config", default="config.yaml", help="Path to config.yaml")
    sub = p.add_subparsers(dest="cmd", required=True)

    p_init = sub.add_parser("init-db", help="Create tables (dev/test databases)")
    p_init.set_defaults(func=cmd_init_db)

    p_import = sub.add_parser("import-war", help="Import a date-first CSV war export")
    p_import.add_argument("path", help="CSV file: date row, then name,kills,deaths rows")
    p_import.add_argument("--guild", type=int, required=True)
    p_import.add_argument("--transcribed", action="store_true",
                          help="Input came from screenshot transcription")
    p_import.add_argument("--outcome", choices=[o.value for o in WarOutcome])
    p_import.add_argument("--requested-by", type=int, default=None)
    p_import.set_defaults(func=cmd_import_war)

    p_remove = sub.add_parser("remove-war", help="Delete every war on a date")
    p_remove.add_argument("date", help="YYYY-MM-DD or DD-MM-YY")
    p_remove.add_argument("--guild", type=int, required=True)
    p_remove.set_defaults(func=cmd_remove_war)

    p_exclude = sub.add_parser("exclude-war", help="Hide a date's wars from attendance")
    p_exclude.add_argument("date", help="YYYY-MM-DD or DD-MM-YY")
    p_exclude.add_argument("--guild", type=int, required=True)
    p_exclude.add_argument("--undo", action="store_true", help="Count the wars again")
    p_exclude.set_defaults(func=cmd_exclude_war)

    p_att = sub.add_parser("attendance", help="Weekly attendance for active members")
    p_att.add_argument("--guild", type=int, required=True)
    p_att.add_argument("--weeks", type=int, default=None)
    p_att.add_argument("--issues-only", action="store_true")
    p_att.set_defaults(func=cmd_attendance)

    p_stats = sub.add_parser("stats", help="Per-member war totals")
    p_stats.add_argument("--guild", type=int, required=True)
    p_stats.set_defaults(func=cmd_stats)

    return p


def main(argv: list[str] | None = None, *, engine: Engine | None = None) -> int:
    """Parse *argv* and run one command.  *engine* overrides ``DATABASE_URL``."""
    load_dotenv()
    configure_logging()

    args = build_argparser().parse_args(argv)
    config_path = Path(args.config)
    cfg = load_config(config_path) if config_path.exists() else WarLedgerConfig()

    if engine is None:
        engine = create_db_engine()

    try:
        return args.func(args, engine, cfg)
    except WarLedgerError as exc:
        logger.debug("%s failed", args.cmd, exc_info=True)
        print(f"error: {exc}", file=sys.stderr)
        return 2 if exc.retryable else 1


if __name__ == "__main__":
    sys.exit(main())
