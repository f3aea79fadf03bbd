"""
Logging configuration.

Usage:
    from renmo.logging_setup import setup_logging
    setup_logging("DEBUG")

Modules log through ``logging.getLogger(__name__)``. Secrets never reach
a log record; anything secret-shaped that must be shown goes through
``mask_secret`` first.
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime, timezone


class _PlainFormatter(logging.Formatter):
    """Format: [TIMESTAMP] LEVEL [MODULE] MESSAGE"""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        module_name = record.name.removeprefix("renmo.")
        message = f"[{timestamp}] {record.levelname:<8} [{module_name:<20}] {record.getMessage()}"
        if record.exc_info:
            message += f"\n{self.formatException(record.exc_info)}"
        return message


def setup_logging(level: str = "INFO") -> None:
    """Attach a single stdout handler to the ``renmo`` logger.

    Idempotent: calling it again replaces the previous handler.
    """
    logger = logging.getLogger("renmo")
    logger.handlers.clear()
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_PlainFormatter())
    logger.addHandler(handler)
    logger.propagate = False


def mask_secret(secret: str | None, visible: int = 4) -> str:
    """Mask a secret for display, keeping only the first ``visible`` chars.

    >>> mask_secret("sEdTM1uX8pu2do5XvTnutH6HsouMaM2")
    'sEdT***************************'
    """
    if not secret:
        return ""
    if len(secret) <= visible:
        return "*" * len(secret)
    return secret[:visible] + "*" * (len(secret) - visible)
