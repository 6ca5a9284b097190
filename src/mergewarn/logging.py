"""Logging setup for mergewarn.

Conflict records own stdout, so diagnostics go to stderr and to a
rotating file under ``~/.mergewarn``.  The publish and listen loops run
on separate threads; the thread name is part of every line.
"""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOGGER_NAME = "mergewarn"
DEFAULT_LOG_FILE = "~/.mergewarn/mergewarn.log"

_FORMAT = "%(asctime)s %(levelname)-7s [%(threadName)s] %(name)s: %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"
_MAX_LOG_BYTES = 5 * 1024 * 1024
_BACKUP_COUNT = 3


def resolve_level(level: str | int | None) -> int:
    """Map ``"info"``, ``10`` or ``"10"`` to a level number. Unknown names mean WARNING."""
    if isinstance(level, int):
        return level
    if not level:
        return logging.WARNING
    if level.isdigit():
        return int(level)
    value = logging.getLevelName(level.upper())
    return value if isinstance(value, int) else logging.WARNING


def setup_logging(
    level: str | int | None = "WARNING",
    log_file: str | None = None,
) -> logging.Logger:
    """(Re)configure the ``mergewarn`` logger and return it.

    Safe to call more than once: the CLI configures logging early from
    its global options and again once ``run`` has loaded the config file.
    """
    logger = logging.getLogger(LOGGER_NAME)
    for h in logger.handlers[:]:
        logger.removeHandler(h)
        h.close()
    logger.setLevel(resolve_level(level))

    fmt = logging.Formatter(_FORMAT, datefmt=_DATEFMT)

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(fmt)
    logger.addHandler(console)

    path = Path(log_file or DEFAULT_LOG_FILE).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    rotating = RotatingFileHandler(str(path), maxBytes=_MAX_LOG_BYTES, backupCount=_BACKUP_COUNT)
    rotating.setFormatter(fmt)
    logger.addHandler(rotating)
    return logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"{LOGGER_NAME}.{name}")
