"""A basic logging helper shared by the command-line tools."""

from __future__ import annotations

import logging
import sys

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(message)s"


def resolve_level(level: int | str) -> int:
    """Return a numeric logging level for *level* ("info", "DEBUG", 20, ...)."""
    if isinstance(level, int):
        return level
    numeric = logging.getLevelName(str(level).strip().upper())
    if not isinstance(numeric, int):
        raise ValueError(f"Unknown logging level: {level!r}")
    return numeric


def setup_logging(level: int | str = logging.INFO, fmt: str = LOG_FORMAT) -> None:
    """Configures basic logging to stdout."""
    logging.basicConfig(
        level=resolve_level(level),
        format=fmt,
        handlers=[logging.StreamHandler(sys.stdout)],
    )
