"""EditSet and its wire codec."""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from mergewarn.errors import SnapshotDecodeError


@dataclass(frozen=True)
class EditSet:
    """The lines a participant has changed relative to the base ref.

    ``entries`` maps a file path to its changed line numbers, sorted
    ascending with no duplicates.  Files with no changed lines are
    never present.  An EditSet with no entries is a valid state (the
    participant has nothing pending) and is still published.
    """

    participant: str
    branch: str | None = None
    entries: Mapping[str, tuple[int, ...]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.participant:
            raise ValueError("EditSet.participant must not be empty")

    @property
    def is_empty(self) -> bool:
        return not self.entries

    def lines(self, path: str) -> tuple[int, ...]:
        return self.entries.get(path, ())

    def canonical(self) -> dict[str, Any]:
        """Plain-dict form with sorted file keys (used for encoding and equality)."""
        return {
            "participant": self.participant,
            "branch": self.branch,
            "entries": {path: list(self.entries[path]) for path in sorted(self.entries)},
        }

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, EditSet):
            return NotImplemented
        return self.canonical() == other.canonical()

    def __hash__(self) -> int:
        return hash(encode(self))


def _normalize_lines(lines: Iterable[int]) -> tuple[int, ...]:
    return tuple(sorted({int(n) for n in lines}))


def build_edit_set(
    changed: Mapping[str, Iterable[int]],
    participant: str,
    branch: str | None = None,
) -> EditSet:
    """Turn a raw ``{path: line numbers}`` diff into a canonical EditSet.

    Paths are taken verbatim; files whose line set is empty are dropped.
    """
    entries: dict[str, tuple[int, ...]] = {}
    for path, lines in changed.items():
        normalized = _normalize_lines(lines)
        if normalized:
            entries[path] = normalized
    return EditSet(participant=participant, branch=branch, entries=entries)


def has_changed(previous: EditSet | None, current: EditSet) -> bool:
    """True when *current* differs structurally from what was last published.

    ``None`` (nothing published yet) always counts as changed so that an
    empty first snapshot still reaches the peers.
    """
    if previous is None:
        return True
    return previous != current


def encode(edit_set: EditSet) -> str:
    """Serialize to the canonical JSON wire form (sorted keys, compact)."""
    return json.dumps(edit_set.canonical(), sort_keys=True, separators=(",", ":"))


def decode(key: str, raw: str | bytes) -> EditSet:
    """Parse a stored edit-set.

    Accepts the canonical object form and the legacy list form
    (``[{"filename", "lineNumbers", "user", "branch"}, ...]``); for
    the latter the store *key* is the participant.

    Raises:
        SnapshotDecodeError: the value is not a well-formed edit-set.
    """
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError) as exc:
        raise SnapshotDecodeError(key, str(exc)) from exc

    try:
        if isinstance(data, list):
            return _decode_legacy(key, data)
        if isinstance(data, dict):
            entries = data.get("entries")
            if entries is None:
                entries = {}
            if not isinstance(entries, dict):
                raise SnapshotDecodeError(key, "'entries' is not an object")
            return build_edit_set(
                {str(path): _require_lines(key, lines) for path, lines in entries.items()},
                participant=str(data.get("participant") or key),
                branch=data.get("branch"),
            )
    except (TypeError, ValueError) as exc:
        raise SnapshotDecodeError(key, str(exc)) from exc
    raise SnapshotDecodeError(key, f"unexpected JSON type {type(data).__name__}")


def _require_lines(key: str, lines: Any) -> list[int]:
    if not isinstance(lines, list):
        raise SnapshotDecodeError(key, "line numbers must be a list")
    for n in lines:
        if isinstance(n, bool) or not isinstance(n, int):
            raise SnapshotDecodeError(key, f"bad line number {n!r}")
    return lines


def _decode_legacy(key: str, items: list[Any]) -> EditSet:
    changed: dict[str, list[int]] = {}
    branch = None
    for item in items:
        if not isinstance(item, dict) or "filename" not in item:
            raise SnapshotDecodeError(key, "legacy entry without 'filename'")
        lines = _require_lines(key, item.get("lineNumbers") or [])
        changed.setdefault(str(item["filename"]), []).extend(lines)
        branch = branch or item.get("branch") or None
    return build_edit_set(changed, participant=key, branch=branch)
