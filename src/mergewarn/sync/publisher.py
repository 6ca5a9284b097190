"""Push the local edit-set to the shared store and wake peers."""

from __future__ import annotations

from mergewarn.logging import get_logger
from mergewarn.sync.editset import EditSet, encode, has_changed
from mergewarn.sync.store import CHANGE_MESSAGE, SharedStore

_log = get_logger("sync.publisher")


class Publisher:
    """Write-then-broadcast, gated on the last successfully published edit-set.

    Owned by the publish loop alone; ``last_published`` is never read or
    written from the listener side.
    """

    def __init__(self, store: SharedStore) -> None:
        self.store = store
        self.last_published: EditSet | None = None
        self.publish_count = 0

    def publish(self, edit_set: EditSet) -> None:
        """Store *edit_set* under its participant and broadcast a change.

        Last write wins; there is no conditional write.  Raises
        TransportError if either step fails, in which case
        ``last_published`` keeps its previous value so the next cycle
        retries.
        """
        self.store.put(edit_set.participant, encode(edit_set))
        self.store.publish(CHANGE_MESSAGE)
        self.last_published = edit_set
        self.publish_count += 1
        _log.info(
            "published %d file(s) for %s on %s",
            len(edit_set.entries),
            edit_set.participant,
            edit_set.branch or "?",
        )

    def publish_if_changed(self, edit_set: EditSet) -> bool:
        """Publish only when *edit_set* differs from the last one. Returns True if sent."""
        if not has_changed(self.last_published, edit_set):
            _log.debug("edit-set unchanged, skipping publish")
            return False
        self.publish(edit_set)
        return True
