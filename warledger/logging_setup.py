"""
warledger.logging_setup — Entry-point logging
==============================================

Library modules only ever call ``logging.getLogger(__name__)``; whoever
embeds the engine decides where records go.  Entry points (Alembic,
scripts, the host bot) call :func:`configure_logging` once.
"""

from __future__ import annotations

import logging
import os

LOG_FORMAT = "%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s"
DATE_FORMAT = "%H:%M:%S"


def configure_logging(level: int | str | None = None) -> logging.Logger:
    """Apply the standard format and return the ``warledger`` root logger.

    *level* defaults to ``$WARLEDGER_LOG_LEVEL`` or ``INFO``.
    """
    if level is None:
        level = os.getenv("WARLEDGER_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt=DATE_FORMAT)
    return logging.getLogger("warledger")
