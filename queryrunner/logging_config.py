"""
Logging setup for queryrunner entry points.

Library modules only create module loggers; the CLI and the HTTP service
call setup_logging once at startup.
"""

from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "notice": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def parse_level(level: str) -> int:
    """
    Map a level name (debug|info|notice|warn|warning|error) to a logging level.

    Raises:
        ValueError: If the name is unknown
    """
    try:
        return LEVELS[level.strip().lower()]
    except KeyError:
        raise ValueError(f"unknown log level: {level}") from None


def setup_logging(level: str = "info") -> None:
    logging.basicConfig(level=parse_level(level), format=LOG_FORMAT, force=True)


__all__ = ["LEVELS", "LOG_FORMAT", "parse_level", "setup_logging"]
