"""Shared test fixtures and helpers."""

from __future__ import annotations

import io
import logging
import subprocess
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import patch

import pytest

from mergewarn.config import WarnConfig
from mergewarn.sync.editset import EditSet, build_edit_set, encode
from mergewarn.sync.reporter import ConflictReporter
from tests.fakes.diff import FakeDiffSource
from tests.fakes.store import FakeStore

FIXED_TIME = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True, scope="session")
def _isolate_logging():
    """Prevent tests from writing to the real ``~/.mergewarn/mergewarn.log``.

    CLI tests invoke click commands that call ``setup_logging()``.  Only
    the level is applied there; no handlers are attached.
    """
    import mergewarn.cli as _cli
    import mergewarn.logging as _mw_logging

    def _test_setup(level="WARNING", log_file=None):
        logger = logging.getLogger(_mw_logging.LOGGER_NAME)
        logger.setLevel(_mw_logging.resolve_level(level))
        return logger

    with (
        patch.object(_mw_logging, "setup_logging", _test_setup),
        patch.object(_cli, "setup_logging", _test_setup),
    ):
        logger = logging.getLogger("mergewarn")
        logger.handlers.clear()
        logger.addHandler(logging.NullHandler())
        logger.setLevel(logging.WARNING)
        yield


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def source() -> FakeDiffSource:
    return FakeDiffSource()


@pytest.fixture
def out() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def reporter(out: io.StringIO) -> ConflictReporter:
    return ConflictReporter(stream=out, clock=lambda: FIXED_TIME)


def make_config(tmp_path: Path | None = None, **kwargs) -> WarnConfig:
    kwargs.setdefault("participant", "alice")
    kwargs.setdefault("poll_interval", 0.05)
    if tmp_path is not None:
        kwargs.setdefault("repo_dir", str(tmp_path))
    return WarnConfig(**kwargs)


def stored(participant: str, entries: dict[str, list[int]], branch: str | None = "master") -> str:
    """Encoded edit-set, as a peer would have written it."""
    return encode(build_edit_set(entries, participant=participant, branch=branch))


def local(entries: dict[str, list[int]], participant: str = "alice", branch="master") -> EditSet:
    return build_edit_set(entries, participant=participant, branch=branch)


def git(path: Path, *args: str) -> str:
    proc = subprocess.run(["git", *args], cwd=str(path), check=True, capture_output=True)
    return proc.stdout.decode()


def init_repo(path: Path, files: dict[str, str] | None = None) -> None:
    """Create a git repo on ``master`` with one commit holding *files*."""
    git(path, "init")
    git(path, "symbolic-ref", "HEAD", "refs/heads/master")
    git(path, "config", "user.email", "test@test.com")
    git(path, "config", "user.name", "Test")
    for name, content in (files or {"README.md": "init\n"}).items():
        (path / name).parent.mkdir(parents=True, exist_ok=True)
        (path / name).write_text(content)
        git(path, "add", name)
    git(path, "commit", "-m", "initial")
