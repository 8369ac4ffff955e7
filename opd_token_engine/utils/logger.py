"""Process-wide logging setup for the token engine."""

from __future__ import annotations

import logging
import sys
from typing import Optional

from opd_token_engine.utils.config import get_settings


LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

_configured = False


def configure_logging(level: Optional[str] = None) -> None:
    """Install the stdout handler once.

    Every layer logs through the same pipe-delimited format so allocation
    decisions, registry changes and HTTP failures interleave readably.
    """

    global _configured
    if _configured:
        return

    resolved_level = (level or get_settings().log_level).upper()
    logging.basicConfig(level=resolved_level, format=LOG_FORMAT, stream=sys.stdout)
    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Return a module logger, configuring the root handler on first use."""
    configure_logging()
    return logging.getLogger(name)
