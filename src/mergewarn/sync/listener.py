"""Change listener — re-evaluate conflicts whenever a peer publishes."""

from __future__ import annotations

import threading
from collections.abc import Callable

from mergewarn.errors import TransportError
from mergewarn.logging import get_logger
from mergewarn.sync.store import EventKind, SharedStore, Subscription

_log = get_logger("sync.listener")

# How long one receive blocks before re-checking the stop flag
_RECEIVE_TIMEOUT = 1.0


class ChangeListener:
    """Blocking subscription loop; one evaluation per data event, in arrival order.

    A read error (or a failing evaluation fetch) triggers one liveness
    probe.  If the probe succeeds the loop re-evaluates, since
    notifications may have been lost, and carries on; that re-evaluation
    is itself covered by the same probe.  If a probe fails the transport
    is unusable and TransportError propagates out of :meth:`run`.
    """

    def __init__(
        self,
        store: SharedStore,
        on_change: Callable[[], object],
        stop: threading.Event | None = None,
        receive_timeout: float = _RECEIVE_TIMEOUT,
    ) -> None:
        self.store = store
        self.on_change = on_change
        self.stop_event = stop or threading.Event()
        self.receive_timeout = receive_timeout
        self.ready = threading.Event()

    def stop(self) -> None:
        self.stop_event.set()

    def run(self) -> None:
        sub = self.store.subscribe()
        self.ready.set()
        _log.info("listening for peer changes")
        resync = False
        try:
            while not self.stop_event.is_set():
                try:
                    if resync:
                        resync = False
                        self.on_change()
                    else:
                        self._step(sub)
                except TransportError as exc:
                    _log.warning("transport error on listen path (%s), probing", exc)
                    sub.ping()  # raises TransportError: fatal
                    _log.info("liveness probe ok, re-evaluating")
                    self.stop_event.wait(self.receive_timeout)
                    resync = True
        finally:
            sub.close()

    def _step(self, sub: Subscription) -> None:
        event = sub.receive(self.receive_timeout)
        if event is None:
            return
        if event.kind is EventKind.SUBSCRIBED:
            _log.debug("subscribed to %s", event.channel)
        elif event.kind is EventKind.DATA:
            self.on_change()
        elif event.kind is EventKind.PONG:
            _log.debug("pong %r", event.data)
