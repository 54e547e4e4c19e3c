"""Logging configuration for regwatch."""

import logging
import sys
from pathlib import Path
from typing import Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# Libraries that log every request or browser event at INFO/DEBUG
QUIET_LOGGERS = ('httpx', 'httpcore', 'playwright', 'asyncio')


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """Send crawl logs to stdout and, when ``log_file`` is given, to that file too.

    Unknown level names fall back to INFO. Calling again replaces the
    previous handlers.
    """
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Module logger; handlers come from setup_logging."""
    return logging.getLogger(name)
