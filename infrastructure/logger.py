"""Logging setup for the allocation API."""
import logging
import sys
from typing import Optional

from infrastructure.config import get_settings


LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

_configured = False


def configure_logging(level: Optional[str] = None) -> None:
    """Send every module's log records to stdout at LOG_LEVEL (or level).

    Later calls are no-ops, so services and the app can all call it.
    """
    global _configured
    if _configured:
        return

    logging.basicConfig(
        level=(level or get_settings().LOG_LEVEL).upper(),
        format=LOG_FORMAT,
        stream=sys.stdout,
    )
    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Module logger; configures logging on first use"""
    configure_logging()
    return logging.getLogger(name)
