"""Centralized logging configuration."""

import sys

from loguru import logger


log_format = ' | '.join(
    (
        '<lk>{time:YYYY-MM-DD HH:mm:ss.SSS}</>',
        '<lvl>{level:<8}</>',
        '<c>{name}::{function}:{line}</>',
        '{message}',
    )
)

_configured = False


def configure_logging(level: str = "INFO") -> None:
    """Replace loguru's default handler with the app's console sink (once per process)."""
    global _configured
    if _configured:
        return
    logger.remove()
    logger.add(sys.stderr, format=log_format, level=level.upper())
    _configured = True
