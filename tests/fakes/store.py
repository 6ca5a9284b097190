"""In-memory SharedStore for unit tests.

Behaves like the Redis-backed store: one value per key, and every
publish wakes every open subscription (including the publisher's own).
"""

from __future__ import annotations

import queue
import threading
from dataclasses import dataclass, field

from mergewarn.errors import TransportError
from mergewarn.sync.store import ChannelEvent, EventKind


@dataclass
class FakeSubscription:
    """Usage::

    sub = store.subscribe()
    sub.read_errors = 1   # next receive() raises TransportError
    sub.ping_fails = True # liveness probe raises TransportError
    """

    events: queue.Queue = field(default_factory=queue.Queue)
    read_errors: int = 0
    ping_fails: bool = False
    pings: int = 0
    closed: bool = False

    def receive(self, timeout: float) -> ChannelEvent | None:
        if self.read_errors > 0:
            self.read_errors -= 1
            raise TransportError("connection reset by peer")
        try:
            return self.events.get(timeout=timeout)
        except queue.Empty:
            return None

    def ping(self) -> None:
        self.pings += 1
        if self.ping_fails:
            raise TransportError("connection refused")
        self.events.put(ChannelEvent(EventKind.PONG, data=""))

    def close(self) -> None:
        self.closed = True


class FakeStore:
    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.messages: list[str] = []
        self.subscriptions: list[FakeSubscription] = []
        self.fail_put = False
        self.fail_publish = False
        self.fail_get_all = False
        self.down = False
        self._lock = threading.Lock()

    def put(self, key: str, value: str) -> None:
        if self.fail_put or self.down:
            raise TransportError("HSET failed")
        with self._lock:
            self.data[key] = value

    def get_all(self) -> dict[str, str]:
        if self.fail_get_all or self.down:
            raise TransportError("HGETALL failed")
        with self._lock:
            return dict(self.data)

    def publish(self, message: str = "1") -> None:
        if self.fail_publish or self.down:
            raise TransportError("PUBLISH failed")
        self.messages.append(message)
        for sub in self.subscriptions:
            sub.events.put(ChannelEvent(EventKind.DATA, channel="newChange", data=message))

    def subscribe(self) -> FakeSubscription:
        if self.down:
            raise TransportError("cannot subscribe")
        sub = FakeSubscription()
        sub.events.put(ChannelEvent(EventKind.SUBSCRIBED, channel="newChange", data="1"))
        self.subscriptions.append(sub)
        return sub

    def ping(self) -> None:
        if self.down:
            raise TransportError("connection refused")
