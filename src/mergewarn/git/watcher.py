"""Wake the publish loop when something in the working tree changes.

watchdog reports attribute-only changes (chmod, touch) as ``modified``,
so they wake the loop too.  The rebuilt edit-set is then identical to
the last one and the publisher drops it without touching the store.
"""

from __future__ import annotations

import threading
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from mergewarn.logging import get_logger

_log = get_logger("git.watcher")

# Events that never change file content
_IGNORED_EVENT_TYPES = frozenset({"opened", "closed_no_write"})


class _TriggerHandler(FileSystemEventHandler):
    def __init__(self, trigger: threading.Event) -> None:
        super().__init__()
        self._trigger = trigger

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.event_type in _IGNORED_EVENT_TYPES:
            return
        _log.debug("fs event %s: %s", event.event_type, event.src_path)
        self._trigger.set()


class ChangeWatcher:
    """Recursive watch on a directory that flips an Event on every change.

    Usage::

        watcher = ChangeWatcher(repo_dir)
        watcher.start()
        if watcher.wait(timeout=5.0):
            ...  # something changed
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.changed = threading.Event()
        self.handler = _TriggerHandler(self.changed)
        self._observer: Observer | None = None

    def start(self) -> None:
        if self._observer is not None:
            return
        self._observer = Observer()
        self._observer.schedule(self.handler, str(self.path), recursive=True)
        self._observer.daemon = True
        self._observer.start()
        _log.info("watching %s for changes", self.path)

    def stop(self) -> None:
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join(timeout=2.0)
        self._observer = None

    def wait(self, timeout: float | None = None) -> bool:
        """Block until a change arrives (or *timeout*); clears the flag. Returns True on change."""
        fired = self.changed.wait(timeout)
        self.changed.clear()
        return fired
