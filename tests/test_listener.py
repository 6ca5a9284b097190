"""Tests for sync/listener.py — event dispatch and the liveness probe."""

from __future__ import annotations

import threading
import time

import pytest

from mergewarn.errors import TransportError
from mergewarn.sync.listener import ChangeListener
from mergewarn.sync.store import ChannelEvent, EventKind
from tests.fakes.store import FakeSubscription


def _wait_for(predicate, timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


class TestChangeListener:
    def test_each_data_event_evaluates_once(self, store):
        calls: list[int] = []
        listener = ChangeListener(store, lambda: calls.append(1), receive_timeout=0.01)
        t = threading.Thread(target=listener.run, daemon=True)
        t.start()
        assert listener.ready.wait(1.0)

        store.publish()
        store.publish()
        assert _wait_for(lambda: len(calls) == 2)

        listener.stop()
        t.join(1.0)
        assert not t.is_alive()
        assert store.subscriptions[0].closed

    def test_subscription_confirmation_and_pong_ignored(self, store):
        calls: list[int] = []
        sub = FakeSubscription()
        sub.events.put(ChannelEvent(EventKind.SUBSCRIBED, channel="newChange"))
        sub.events.put(ChannelEvent(EventKind.PONG))
        store.subscribe = lambda: sub
        listener = ChangeListener(store, lambda: calls.append(1), receive_timeout=0.01)

        t = threading.Thread(target=listener.run, daemon=True)
        t.start()
        assert _wait_for(sub.events.empty)
        listener.stop()
        t.join(1.0)
        assert calls == []

    def test_read_error_with_live_transport_recovers(self, store):
        sub = FakeSubscription(read_errors=1)
        store.subscribe = lambda: sub
        calls: list[int] = []

        def on_change():
            calls.append(1)
            listener.stop()

        listener = ChangeListener(store, on_change, receive_timeout=0.01)
        listener.run()

        assert sub.pings == 1
        assert calls == [1]
        assert sub.closed

    def test_failed_probe_is_fatal(self, store):
        sub = FakeSubscription(read_errors=1, ping_fails=True)
        store.subscribe = lambda: sub
        listener = ChangeListener(store, lambda: None, receive_timeout=0.01)

        with pytest.raises(TransportError):
            listener.run()
        assert sub.closed

    def test_evaluation_transport_error_probes(self, store):
        sub = FakeSubscription(ping_fails=True)
        sub.events.put(ChannelEvent(EventKind.DATA, data="1"))
        store.subscribe = lambda: sub

        def on_change():
            raise TransportError("HGETALL failed")

        listener = ChangeListener(store, on_change, receive_timeout=0.01)
        with pytest.raises(TransportError):
            listener.run()
        assert sub.pings == 1

    def test_failed_reevaluation_is_probed_again(self, store):
        sub = FakeSubscription(read_errors=1)
        store.subscribe = lambda: sub
        attempts: list[int] = []

        def on_change():
            attempts.append(1)
            if len(attempts) == 1:
                raise TransportError("HGETALL failed")
            listener.stop()

        listener = ChangeListener(store, on_change, receive_timeout=0.01)
        listener.run()

        assert sub.pings == 2
        assert len(attempts) == 2
        assert sub.closed

    def test_subscribe_failure_propagates(self, store):
        store.down = True
        listener = ChangeListener(store, lambda: None)
        with pytest.raises(TransportError):
            listener.run()
        assert not listener.ready.is_set()
