"""
warledger.config — YAML Configuration Loader
=============================================

Reads ``config.yaml`` for the engine's tuning knobs: the reference time
zone used for every week-boundary calculation, the default attendance
window, the worker cap for guild-wide checks and the per-operation
timeouts.  Secrets (``DATABASE_URL``) stay in the environment / ``.env``.

Usage::

    from warledger.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.timezone)          # "America/New_York"
    clock = cfg.clock()
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml

from warledger.engine.calendar import MAX_WEEKS_BACK, MIN_WEEKS_BACK, Clock


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class WarLedgerConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Reference zone for all week math (IANA name)
    timezone: str = "America/New_York"

    # Attendance
    default_weeks: int = 4
    attendance_workers: int = 4  # keep below the engine's pool_size

    # Timeouts (seconds)
    read_timeout_seconds: float = 10.0
    import_timeout_seconds: float = 30.0

    def clock(self) -> Clock:
        """Build the canonical :class:`Clock` for this deployment."""
        return Clock.from_name(self.timezone)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> WarLedgerConfig:
    """Read *path* and return a :class:`WarLedgerConfig` instance.

    Every key is optional; missing keys fall back to the dataclass
    defaults.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    ValueError
        If a value is out of range (e.g. ``default_weeks`` outside 1–52).
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    defaults = WarLedgerConfig()
    cfg = WarLedgerConfig(
        timezone=str(raw.get("timezone", defaults.timezone)),
        default_weeks=int(raw.get("default_weeks", defaults.default_weeks)),
        attendance_workers=int(raw.get("attendance_workers", defaults.attendance_workers)),
        read_timeout_seconds=float(
            raw.get("read_timeout_seconds", defaults.read_timeout_seconds)
        ),
        import_timeout_seconds=float(
            raw.get("import_timeout_seconds", defaults.import_timeout_seconds)
        ),
    )

    if not MIN_WEEKS_BACK <= cfg.default_weeks <= MAX_WEEKS_BACK:
        raise ValueError(
            f"default_weeks must be between {MIN_WEEKS_BACK} and {MAX_WEEKS_BACK}, "
            f"got {cfg.default_weeks}"
        )
    if cfg.attendance_workers < 1:
        raise ValueError("attendance_workers must be at least 1")
    if cfg.read_timeout_seconds <= 0 or cfg.import_timeout_seconds <= 0:
        raise ValueError("timeouts must be positive")

    # Fail fast on an unknown zone rather than at the first report.
    cfg.clock()
    return cfg
