"""YAML configuration loader for mergewarn."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import yaml

from mergewarn.errors import ConfigError

__all__ = [
    "ConfigError",
    "DIFF_MODES",
    "TransportConfig",
    "WarnConfig",
    "load_config",
    "serialize_config",
]

# "workdir": base vs working tree.  "branch": base vs the branch's committed
# tree whenever HEAD is not the base branch.
DIFF_MODES = ("workdir", "branch")

_URL_SCHEMES = ("redis", "rediss", "unix")


@dataclass
class TransportConfig:
    """Shared store settings (``transport:`` section in mergewarn.yaml)."""

    url: str = "redis://localhost:6379/0"
    password: str | None = None
    diffs_key: str = "mergewarnDiffs"  # hash holding one edit-set per participant
    channel: str = "newChange"  # broadcast channel for wake-ups


@dataclass
class WarnConfig:
    participant: str = ""
    repo_dir: str = "."
    base_branch: str = "master"
    diff_mode: str = "workdir"
    poll_interval: float = 5.0
    watch: bool = False
    # Single-user test mode: compare against our own published edit-set too
    test_mode: bool = False
    match_branch: bool = False
    log_level: str = "WARNING"
    log_file: str | None = None
    transport: TransportConfig = field(default_factory=TransportConfig)
    source_path: str | None = None

    @property
    def resolved_repo_dir(self) -> Path:
        return Path(self.repo_dir).expanduser().resolve()

    def validate(self) -> list[str]:
        """Validate config, returning a list of error messages (empty = valid)."""
        errors: list[str] = []

        if not self.participant.strip():
            errors.append("participant is empty (set 'participant' or pass --user)")
        if not self.base_branch.strip():
            errors.append("base_branch is empty")
        if self.diff_mode not in DIFF_MODES:
            errors.append(
                f"diff_mode must be one of {', '.join(DIFF_MODES)}, got '{self.diff_mode}'"
            )
        if self.poll_interval <= 0:
            errors.append("poll_interval must be > 0")

        repo = self.resolved_repo_dir
        if not repo.is_dir():
            errors.append(f"repo_dir does not exist: {repo}")

        scheme = urlparse(self.transport.url).scheme
        if scheme not in _URL_SCHEMES:
            errors.append(
                f"transport.url scheme must be one of {', '.join(_URL_SCHEMES)}, "
                f"got '{self.transport.url}'"
            )
        if not self.transport.diffs_key:
            errors.append("transport.diffs_key is empty")
        if not self.transport.channel:
            errors.append("transport.channel is empty")

        if self.log_file:
            log_parent = Path(self.log_file).expanduser().parent
            if not log_parent.exists():
                errors.append(f"Log file parent directory does not exist: {log_parent}")

        return errors

    def apply_env_overrides(self) -> None:
        """Apply environment variable overrides."""
        if val := os.environ.get("MERGEWARN_URI"):
            self.transport.url = val
        if val := os.environ.get("MERGEWARN_PASSWORD"):
            self.transport.password = val
        if val := os.environ.get("MERGEWARN_USER"):
            self.participant = val
        if val := os.environ.get("MERGEWARN_DIR"):
            self.repo_dir = val
        if val := os.environ.get("MERGEWARN_BASE"):
            self.base_branch = val
        if val := os.environ.get("MERGEWARN_POLL_INTERVAL"):
            try:
                self.poll_interval = float(val)
            except ValueError:
                pass


def load_config(path: str | None = None) -> WarnConfig:
    """Load config from explicit path, mergewarn.yaml in CWD, or ~/.config/mergewarn/config.yaml."""
    candidates = []
    if path:
        candidates.append(Path(path))
    else:
        candidates.append(Path.cwd() / "mergewarn.yaml")
        candidates.append(Path.home() / ".config" / "mergewarn" / "config.yaml")

    for candidate in candidates:
        if candidate.exists():
            cfg = _parse_config(candidate)
            break
    else:
        cfg = WarnConfig()

    cfg.apply_env_overrides()
    return cfg


def _text(path: Path, data: dict[str, Any], key: str, default: str | None) -> str | None:
    """Read a string setting; YAML scalars such as ``2024`` are taken as text."""
    value = data.get(key, default)
    if value is None:
        return default
    if isinstance(value, (dict, list)):
        raise ConfigError(f"{path}: '{key}' must be a string, got {type(value).__name__}")
    return str(value)


def _parse_config(path: Path) -> WarnConfig:
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"{path}: invalid YAML: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigError(f"{path}: top level must be a mapping")

    transport_data = data.get("transport", {}) or {}
    if not isinstance(transport_data, dict):
        raise ConfigError(f"{path}: 'transport' must be a mapping")

    transport = TransportConfig(
        url=_text(path, transport_data, "url", "redis://localhost:6379/0"),
        password=_text(path, transport_data, "password", None),
        diffs_key=_text(path, transport_data, "diffs_key", "mergewarnDiffs"),
        channel=_text(path, transport_data, "channel", "newChange"),
    )

    try:
        poll_interval = float(data.get("poll_interval", 5.0))
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{path}: poll_interval must be a number: {exc}") from exc

    return WarnConfig(
        participant=_text(path, data, "participant", ""),
        repo_dir=_text(path, data, "repo_dir", "."),
        base_branch=_text(path, data, "base_branch", "master"),
        diff_mode=_text(path, data, "diff_mode", "workdir"),
        poll_interval=poll_interval,
        watch=bool(data.get("watch", False)),
        test_mode=bool(data.get("test_mode", False)),
        match_branch=bool(data.get("match_branch", False)),
        log_level=_text(path, data, "log_level", "WARNING"),
        log_file=_text(path, data, "log_file", None),
        transport=transport,
        source_path=str(path),
    )


def serialize_config(config: WarnConfig) -> dict[str, Any]:
    """Serialize WarnConfig to a dict. Omits None optional fields."""
    transport: dict[str, Any] = {
        "url": config.transport.url,
        "diffs_key": config.transport.diffs_key,
        "channel": config.transport.channel,
    }
    if config.transport.password is not None:
        transport["password"] = config.transport.password

    data: dict[str, Any] = {
        "participant": config.participant,
        "repo_dir": config.repo_dir,
        "base_branch": config.base_branch,
        "diff_mode": config.diff_mode,
        "poll_interval": config.poll_interval,
        "watch": config.watch,
        "test_mode": config.test_mode,
        "match_branch": config.match_branch,
        "log_level": config.log_level,
        "transport": transport,
    }
    if config.log_file is not None:
        data["log_file"] = config.log_file
    return data
