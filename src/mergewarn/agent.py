"""Publish loop and listen loop for one participant."""

from __future__ import annotations

import threading

from mergewarn.config import WarnConfig
from mergewarn.errors import DiffError, TransportError
from mergewarn.git.diff import GitDiffSource
from mergewarn.git.watcher import ChangeWatcher
from mergewarn.logging import get_logger
from mergewarn.sync.editset import EditSet, build_edit_set
from mergewarn.sync.evaluator import ConflictRecord, evaluate
from mergewarn.sync.listener import ChangeListener
from mergewarn.sync.publisher import Publisher
from mergewarn.sync.reporter import ConflictReporter
from mergewarn.sync.store import SharedStore

_log = get_logger("agent")

# Upper bound on waiting for the listener to subscribe before publishing
_READY_TIMEOUT = 10.0
_JOIN_TIMEOUT = 5.0


class MergeWarnAgent:
    """Runs both loops on their own threads until stopped or a fatal transport error.

    The publish loop builds the local edit-set every poll interval (or on
    a filesystem change in watch mode) and publishes it when it changed.
    The listen loop re-evaluates conflicts on every broadcast.  The two
    share nothing in-process; they meet only through the store.
    """

    def __init__(
        self,
        config: WarnConfig,
        store: SharedStore,
        source: GitDiffSource | None = None,
        reporter: ConflictReporter | None = None,
        watcher: ChangeWatcher | None = None,
    ) -> None:
        self.config = config
        self.store = store
        self.source = source or GitDiffSource(
            config.resolved_repo_dir,
            base_branch=config.base_branch,
            diff_mode=config.diff_mode,
        )
        self.reporter = reporter or ConflictReporter()
        if watcher is None and config.watch:
            watcher = ChangeWatcher(config.resolved_repo_dir)
        self.watcher = watcher
        self.publisher = Publisher(store)
        self._stop = threading.Event()
        self.listener = ChangeListener(store, self.evaluate_once, self._stop)
        self._threads: list[threading.Thread] = []
        self.fatal_error: BaseException | None = None

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    # --- one-shot operations ---

    def snapshot(self) -> EditSet:
        """Build the local edit-set from the current diff. Raises DiffError."""
        branch = self.source.branch()
        changed = self.source.changed_lines(branch)
        return build_edit_set(changed, participant=self.config.participant, branch=branch)

    def publish_once(self) -> bool:
        """One publish-loop iteration. Returns True when something was published."""
        try:
            edit_set = self.snapshot()
        except DiffError:
            _log.warning("diff failed, skipping this cycle", exc_info=True)
            return False
        try:
            return self.publisher.publish_if_changed(edit_set)
        except TransportError:
            _log.warning("publish failed, will retry next cycle", exc_info=True)
            return False

    def compute_conflicts(self) -> list[ConflictRecord]:
        """Evaluate against the store without reporting. Raises DiffError / TransportError."""
        local = self.snapshot()
        shared = self.store.get_all()
        return evaluate(
            local,
            shared,
            allow_self=self.config.test_mode,
            match_branch=self.config.match_branch,
        )

    def evaluate_once(self) -> list[ConflictRecord] | None:
        """Evaluate and report. Returns None when the local diff failed.

        TransportError propagates so the listener can probe the connection.
        """
        try:
            records = self.compute_conflicts()
        except DiffError:
            _log.warning("diff failed, skipping evaluation", exc_info=True)
            return None
        self.reporter.report(records)
        return records

    # --- loops ---

    def run_publish_loop(self) -> None:
        while not self._stop.is_set():
            self.publish_once()
            if self.watcher is not None:
                self.watcher.wait(timeout=self.config.poll_interval)
            else:
                self._stop.wait(self.config.poll_interval)

    def _run_listener(self) -> None:
        try:
            self.listener.run()
        except BaseException as exc:
            self.fatal_error = exc
            _log.error("listener stopped: %s", exc)
            self.stop()
            self.listener.ready.set()

    def start(self) -> None:
        """Check the transport, subscribe, then start publishing. Raises TransportError."""
        self.store.ping()
        self._stop.clear()
        if self.watcher is not None:
            self.watcher.start()

        listen = threading.Thread(target=self._run_listener, daemon=True, name="mergewarn-listen")
        listen.start()
        self._threads.append(listen)
        if not self.listener.ready.wait(_READY_TIMEOUT):
            _log.warning("listener not subscribed after %.0fs, publishing anyway", _READY_TIMEOUT)

        publish = threading.Thread(
            target=self.run_publish_loop, daemon=True, name="mergewarn-publish"
        )
        publish.start()
        self._threads.append(publish)
        _log.info(
            "agent started for %s (%s mode, every %.1fs)",
            self.config.participant,
            "watch" if self.watcher else "poll",
            self.config.poll_interval,
        )

    def stop(self) -> None:
        self._stop.set()
        if self.watcher is not None:
            self.watcher.changed.set()

    def join(self, timeout: float = _JOIN_TIMEOUT) -> None:
        for t in self._threads:
            if t is not threading.current_thread():
                t.join(timeout)
        self._threads = [t for t in self._threads if t.is_alive()]
        if self.watcher is not None:
            self.watcher.stop()

    def run(self) -> None:
        """Start both loops and block until stopped; re-raises a fatal listener error."""
        self.start()
        try:
            while not self._stop.wait(0.5):
                pass
        except KeyboardInterrupt:
            _log.info("interrupted")
        finally:
            self.stop()
            self.join()
        if self.fatal_error is not None:
            raise self.fatal_error
