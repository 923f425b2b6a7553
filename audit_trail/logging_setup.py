"""
Logging configuration shared by the web app and the seed script.

Usage:
    from audit_trail.logging_setup import setup_logging
    setup_logging("INFO")
"""

from __future__ import annotations

import logging
import sys

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Loggers that produce a line per query or request
NOISY_LOGGERS = [
    "sqlalchemy.engine",
    "uvicorn.access",
]


def setup_logging(level: str | int = logging.INFO) -> logging.Logger:
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Repeated calls must not stack handlers
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT, LOG_DATE_FORMAT))
    root_logger.addHandler(console_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return root_logger
