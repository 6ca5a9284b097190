"""Conflict evaluation: which of my changed lines has a peer also changed."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import asdict, dataclass

from mergewarn.errors import SnapshotDecodeError
from mergewarn.logging import get_logger
from mergewarn.sync.editset import EditSet, decode

_log = get_logger("sync.evaluator")


@dataclass(frozen=True, order=True)
class ConflictRecord:
    """One local (file, line) that *peer* has also changed."""

    peer: str
    file: str
    line: int

    def to_dict(self) -> dict[str, object]:
        return asdict(self)


def evaluate(
    local: EditSet,
    shared: Mapping[str, str | bytes],
    allow_self: bool = False,
    match_branch: bool = False,
) -> list[ConflictRecord]:
    """Compare *local* against every peer's stored edit-set.

    Args:
        local: This participant's current edit-set.
        shared: Raw store contents, participant → encoded edit-set.
        allow_self: Single-user test mode; also compare against the row
            stored under our own participant key.
        match_branch: Only compare against peers on the same branch.

    Returns:
        Sorted ConflictRecords.  A line shared with two peers yields two
        records; the same (peer, file, line) never appears twice.  A
        peer whose value cannot be decoded is skipped.
    """
    if local.is_empty:
        return []

    records: set[ConflictRecord] = set()
    for peer, raw in shared.items():
        if peer == local.participant and not allow_self:
            continue
        try:
            theirs = decode(peer, raw)
        except SnapshotDecodeError:
            _log.warning("skipping unreadable edit-set from %s", peer, exc_info=True)
            continue
        if match_branch and theirs.branch != local.branch:
            continue

        for path in local.entries.keys() & theirs.entries.keys():
            overlap = set(local.lines(path)) & set(theirs.lines(path))
            records.update(ConflictRecord(peer=peer, file=path, line=n) for n in overlap)

    return sorted(records)
