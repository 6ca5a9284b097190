"""One timestamped, machine-parsable stdout line per qualifying evaluation."""

from __future__ import annotations

import json
import sys
from collections.abc import Callable, Sequence
from datetime import datetime, timezone
from typing import TextIO

from mergewarn.logging import get_logger
from mergewarn.sync.evaluator import ConflictRecord

_log = get_logger("sync.reporter")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def format_record(records: Sequence[ConflictRecord], when: datetime) -> str:
    """``<ISO-8601 timestamp>|<JSON array of {peer, file, line}>``"""
    body = json.dumps([r.to_dict() for r in sorted(records)], separators=(",", ":"))
    return f"{when.isoformat()}|{body}"


class ConflictReporter:
    """Writes evaluation results to *stream*, suppressing repeated empty results.

    The first evaluation and every non-empty one are always written.
    An empty result is written only when the previous one was not
    empty, so a consumer sees the conflicts → no-conflicts transition
    exactly once.
    """

    def __init__(
        self,
        stream: TextIO | None = None,
        clock: Callable[[], datetime] = _now,
    ) -> None:
        self._stream = stream
        self._clock = clock
        self._last: list[ConflictRecord] | None = None

    @property
    def stream(self) -> TextIO:
        return self._stream or sys.stdout

    def should_emit(self, records: Sequence[ConflictRecord]) -> bool:
        if self._last is None or records:
            return True
        return bool(self._last)

    def report(self, records: Sequence[ConflictRecord]) -> bool:
        """Emit *records* if they qualify. Returns True when a line was written."""
        current = sorted(records)
        emit = self.should_emit(current)
        self._last = current
        if not emit:
            _log.debug("still no conflicts, suppressed")
            return False

        line = format_record(current, self._clock())
        self.stream.write(line + "\n")
        self.stream.flush()
        if current:
            _log.info("%d conflicting line(s) reported", len(current))
        return True
