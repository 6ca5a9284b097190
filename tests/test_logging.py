"""Tests for logging.py."""

from __future__ import annotations

import logging
import sys
import threading
from logging.handlers import RotatingFileHandler

import pytest

from mergewarn.logging import LOGGER_NAME, get_logger, resolve_level, setup_logging


@pytest.fixture(autouse=True)
def _restore_logger():
    yield
    logger = logging.getLogger(LOGGER_NAME)
    for h in logger.handlers[:]:
        logger.removeHandler(h)
        h.close()
    logger.addHandler(logging.NullHandler())
    logger.setLevel(logging.WARNING)


@pytest.mark.parametrize(
    "given, expected",
    [
        ("debug", logging.DEBUG),
        ("INFO", logging.INFO),
        (10, logging.DEBUG),
        ("40", logging.ERROR),
        ("chatty", logging.WARNING),
        (None, logging.WARNING),
    ],
)
def test_resolve_level(given, expected):
    assert resolve_level(given) == expected


def test_diagnostics_go_to_stderr_and_file(tmp_path):
    log_file = tmp_path / "logs" / "mw.log"
    logger = setup_logging("INFO", str(log_file))

    streams = [h.stream for h in logger.handlers if type(h) is logging.StreamHandler]
    assert streams == [sys.stderr]
    rotating = [h for h in logger.handlers if isinstance(h, RotatingFileHandler)]
    assert len(rotating) == 1
    assert log_file.parent.is_dir()


def test_reconfigure_replaces_handlers(tmp_path):
    setup_logging("WARNING", str(tmp_path / "a.log"))
    logger = setup_logging("DEBUG", str(tmp_path / "b.log"))
    assert len(logger.handlers) == 2
    assert logger.level == logging.DEBUG


def test_lines_carry_thread_name(tmp_path):
    log_file = tmp_path / "mw.log"
    logger = setup_logging("INFO", str(log_file))
    logger.removeHandler(logger.handlers[0])  # keep test output quiet

    t = threading.Thread(
        target=lambda: get_logger("sync.listener").info("listening"), name="mergewarn-listen"
    )
    t.start()
    t.join()
    for h in logger.handlers:
        h.flush()

    line = log_file.read_text().strip()
    assert "[mergewarn-listen] mergewarn.sync.listener: listening" in line


def test_child_loggers_share_level(tmp_path):
    setup_logging("DEBUG", str(tmp_path / "mw.log"))
    child = get_logger("agent")
    assert child.name == "mergewarn.agent"
    assert child.getEffectiveLevel() == logging.DEBUG
