"""
WarLedger — Guild War Attendance & Import Engine
=================================================
Tracks a guild's weekly war participation, reconciles it against the
roster to compute attendance compliance, and ingests per-war combat
results (CSV or screenshot transcriptions) into a relational store.

Package layout::

    warledger/
    ├── __main__.py        # Officer maintenance CLI (python -m warledger)
    ├── config.py          # YAML → typed Python config
    ├── errors.py          # Typed error taxonomy (kind + message + id)
    ├── logging_setup.py   # Entry-point logging format
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine, sessions, timeouts, async bridge
    │   └── models.py      # ORM models (members, vacations, wars, …)
    ├── engine/
    │   ├── calendar.py    # Sunday-anchored week windows + injected Clock
    │   ├── vacation.py    # Full-week vacation excusal
    │   ├── participation.py # Per-week war participation index
    │   └── war_parser.py  # CSV / transcript → ParsedWar
    └── services/
        ├── attendance_service.py # Per-member + guild-wide attendance
        ├── war_service.py        # Transactional war import / removal / stats
        ├── roster_service.py     # Member resolver + roster mutations
        └── vacation_service.py   # Vacation create / read
"""

__version__ = "0.1.0"
