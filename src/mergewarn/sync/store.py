"""Shared store — keyed edit-sets plus a wake-up broadcast channel.

The agent only relies on the small contract in :class:`SharedStore`;
:class:`RedisStore` implements it with a Redis hash (one field per
participant) and Redis pub/sub.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Protocol

import redis

from mergewarn.config import TransportConfig
from mergewarn.errors import TransportError
from mergewarn.logging import get_logger

_log = get_logger("sync.store")

# Payload of every broadcast: recipients always re-read the whole store
CHANGE_MESSAGE = "1"


class EventKind(Enum):
    SUBSCRIBED = "subscribed"  # subscription confirmation
    DATA = "data"  # somebody published an edit-set
    PONG = "pong"  # keepalive / liveness answer


@dataclass
class ChannelEvent:
    kind: EventKind
    channel: str = ""
    data: str = ""


class Subscription(Protocol):
    def receive(self, timeout: float) -> ChannelEvent | None:
        """Next event, or None when *timeout* passes quietly. Raises TransportError."""
        ...

    def ping(self) -> None:
        """Liveness probe over the subscription connection. Raises TransportError."""
        ...

    def close(self) -> None: ...


class SharedStore(Protocol):
    def put(self, key: str, value: str) -> None: ...

    def get_all(self) -> dict[str, str]: ...

    def publish(self, message: str = CHANGE_MESSAGE) -> None: ...

    def subscribe(self) -> Subscription: ...

    def ping(self) -> None: ...


def _text(value: object) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return "" if value is None else str(value)


class RedisSubscription:
    """Pub/sub wrapper translating redis-py messages into ChannelEvents."""

    def __init__(self, pubsub: redis.client.PubSub) -> None:
        self._pubsub = pubsub

    def receive(self, timeout: float) -> ChannelEvent | None:
        try:
            msg = self._pubsub.get_message(timeout=timeout)
        except redis.RedisError as exc:
            raise TransportError(f"subscription read failed: {exc}") from exc
        if msg is None:
            return None

        msg_type = _text(msg.get("type"))
        channel = _text(msg.get("channel"))
        data = _text(msg.get("data"))
        if msg_type in ("subscribe", "psubscribe"):
            return ChannelEvent(EventKind.SUBSCRIBED, channel=channel, data=data)
        if msg_type in ("message", "pmessage"):
            return ChannelEvent(EventKind.DATA, channel=channel, data=data)
        if msg_type == "pong":
            return ChannelEvent(EventKind.PONG, data=data)
        raise TransportError(f"unknown pub/sub message type: {msg_type!r}")

    def ping(self) -> None:
        try:
            self._pubsub.ping()
        except redis.RedisError as exc:
            raise TransportError(f"liveness probe failed: {exc}") from exc

    def close(self) -> None:
        try:
            self._pubsub.close()
        except redis.RedisError:
            _log.debug("error closing pub/sub connection", exc_info=True)


class RedisStore:
    """SharedStore backed by one Redis hash and one pub/sub channel."""

    def __init__(self, config: TransportConfig, client: redis.Redis | None = None) -> None:
        self.config = config
        self._client = client or redis.Redis.from_url(
            config.url,
            password=config.password,
            decode_responses=True,
        )

    def put(self, key: str, value: str) -> None:
        try:
            self._client.hset(self.config.diffs_key, key, value)
        except redis.RedisError as exc:
            raise TransportError(f"HSET {self.config.diffs_key}[{key}] failed: {exc}") from exc

    def get_all(self) -> dict[str, str]:
        try:
            raw = self._client.hgetall(self.config.diffs_key)
        except redis.RedisError as exc:
            raise TransportError(f"HGETALL {self.config.diffs_key} failed: {exc}") from exc
        return {_text(k): _text(v) for k, v in raw.items()}

    def publish(self, message: str = CHANGE_MESSAGE) -> None:
        try:
            self._client.publish(self.config.channel, message)
        except redis.RedisError as exc:
            raise TransportError(f"PUBLISH {self.config.channel} failed: {exc}") from exc

    def subscribe(self) -> RedisSubscription:
        pubsub = self._client.pubsub()
        try:
            pubsub.subscribe(self.config.channel)
        except redis.RedisError as exc:
            pubsub.close()
            raise TransportError(
                f"cannot subscribe to {self.config.channel} at {self.config.url}: {exc}"
            ) from exc
        return RedisSubscription(pubsub)

    def ping(self) -> None:
        try:
            self._client.ping()
        except redis.RedisError as exc:
            raise TransportError(f"cannot reach {self.config.url}: {exc}") from exc
