"""Realtime notification bus with swappable providers.

Delivery contract for subscribers: at-least-once, ordered per channel on a
best-effort basis, and nothing is replayed across reconnects. Every payload
carries a full game snapshot, so a client that suspects it missed events
re-fetches the game and replaces its local copy.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import queue
import threading
from collections import deque
from dataclasses import dataclass
from typing import Deque, Dict, List, Optional

import pusher
from ably import AblyException, AblyRest
from pusher.errors import PusherError

from .errors import TransientPublishFailure

logger = logging.getLogger(__name__)

LOBBY_CHANNEL = "lobby"

GAME_CREATED = "game-created"
GAME_UPDATED = "game-updated"
GAME_REMOVED = "game-removed"
PLAYER_JOINED = "player-joined"
PLAYER_LEFT = "player-left"
PLAYER_MOVED = "player-moved"
GAME_ENDED = "game-ended"

EVENTS = (
    GAME_CREATED,
    GAME_UPDATED,
    GAME_REMOVED,
    PLAYER_JOINED,
    PLAYER_LEFT,
    PLAYER_MOVED,
    GAME_ENDED,
)


def game_channel(game_id: str) -> str:
    if not game_id or not isinstance(game_id, str):
        raise ValueError("Invalid game id for channel")
    return f"game-{game_id}"


@dataclass(frozen=True)
class BusEvent:
    id: int
    channel: str
    event: str
    payload: Dict[str, object]


class RealtimeBus:
    """Publish side of the realtime layer.

    ``publish`` never raises: a failed push is logged and dropped, because the
    state change it announces has already been committed.
    """

    name = "base"

    def publish(self, channel: str, event: str, payload: Dict[str, object]) -> bool:
        try:
            self._send(channel, event, payload)
        except TransientPublishFailure as exc:
            logger.warning("%s", exc)
            return False
        except Exception:
            logger.exception("publish %s on %s failed via %s", event, channel, self.name)
            return False
        return True

    def subscribe(self, channel: str, event: Optional[str] = None) -> "Subscription":
        raise NotImplementedError(
            f"{self.name} bus is publish-only; clients subscribe through the provider"
        )

    def client_config(self) -> Dict[str, object]:
        return {"backend": self.name, "lobbyChannel": LOBBY_CHANNEL}

    def close(self) -> None:
        pass

    def _send(self, channel: str, event: str, payload: Dict[str, object]) -> None:
        raise NotImplementedError


class NullBus(RealtimeBus):
    """Drops every event. Clients fall back to polling."""

    name = "none"

    def _send(self, channel: str, event: str, payload: Dict[str, object]) -> None:
        logger.debug("dropping %s on %s", event, channel)


# ---------- In-process bus ----------


class Subscription:
    """Queue of events for one subscriber, polled with ``get`` or ``drain``."""

    def __init__(self, bus: "InMemoryBus", channel: str, event: Optional[str]) -> None:
        self.channel = channel
        self.event = event
        self._bus = bus
        self._queue: "queue.Queue[BusEvent]" = queue.Queue()
        self.closed = False

    def matches(self, item: BusEvent) -> bool:
        return item.channel == self.channel and (self.event is None or item.event == self.event)

    def deliver(self, item: BusEvent) -> None:
        self._queue.put(item)

    def get(self, timeout: Optional[float] = None) -> Optional[BusEvent]:
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self) -> List[BusEvent]:
        items: List[BusEvent] = []
        while True:
            try:
                items.append(self._queue.get_nowait())
            except queue.Empty:
                return items

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._bus._unsubscribe(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class InMemoryBus(RealtimeBus):
    """Fans events out to in-process subscribers (the SSE endpoint, tests)."""

    name = "memory"

    def __init__(self, history: int = 1000) -> None:
        self._ids = itertools.count(1)
        self._lock = threading.Lock()
        self._subscribers: List[Subscription] = []
        self.published: Deque[BusEvent] = deque(maxlen=history)

    def _send(self, channel: str, event: str, payload: Dict[str, object]) -> None:
        with self._lock:
            item = BusEvent(next(self._ids), channel, event, payload)
            self.published.append(item)
            targets = [s for s in self._subscribers if s.matches(item)]
        for sub in targets:
            sub.deliver(item)

    def subscribe(self, channel: str, event: Optional[str] = None) -> Subscription:
        sub = Subscription(self, channel, event)
        with self._lock:
            self._subscribers.append(sub)
        return sub

    def _unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            if sub in self._subscribers:
                self._subscribers.remove(sub)

    def events(self, channel: Optional[str] = None, event: Optional[str] = None) -> List[BusEvent]:
        with self._lock:
            items = list(self.published)
        return [
            e
            for e in items
            if (channel is None or e.channel == channel) and (event is None or e.event == event)
        ]

    def close(self) -> None:
        with self._lock:
            subs = list(self._subscribers)
        for sub in subs:
            sub.close()


# ---------- Pusher ----------


class PusherBus(RealtimeBus):
    name = "pusher"

    def __init__(
        self, app_id: str, key: str, secret: str, cluster: str, timeout: float = 5.0
    ) -> None:
        self.key = key
        self.cluster = cluster
        self._client = pusher.Pusher(
            app_id=app_id,
            key=key,
            secret=secret,
            cluster=cluster,
            ssl=True,
            timeout=max(1, int(timeout)),
        )

    def _send(self, channel: str, event: str, payload: Dict[str, object]) -> None:
        try:
            self._client.trigger(channel, event, payload)
        except PusherError as exc:
            raise TransientPublishFailure(channel, event, str(exc)) from exc

    def client_config(self) -> Dict[str, object]:
        config = super().client_config()
        config.update({"key": self.key, "cluster": self.cluster})
        return config


# ---------- Ably ----------


class AblyBus(RealtimeBus):
    """Publishes through Ably's REST API.

    The Ably SDK is asyncio-based; each publish runs on a short-lived event
    loop in the calling worker thread, bounded by ``timeout``.
    """

    name = "ably"

    def __init__(self, api_key: str, timeout: float = 5.0) -> None:
        # "<app>.<key id>:<secret>"; only the part before the colon is public.
        self.key_name = api_key.split(":", 1)[0]
        self._api_key = api_key
        self._timeout = timeout

    def _client(self) -> AblyRest:
        return AblyRest(self._api_key)

    async def _deliver(self, channel: str, event: str, payload: Dict[str, object]) -> None:
        client = self._client()
        try:
            await client.channels.get(channel).publish(event, payload)
        finally:
            await client.close()

    def _send(self, channel: str, event: str, payload: Dict[str, object]) -> None:
        try:
            asyncio.run(asyncio.wait_for(self._deliver(channel, event, payload), self._timeout))
        except asyncio.TimeoutError as exc:
            raise TransientPublishFailure(
                channel, event, f"timed out after {self._timeout}s"
            ) from exc
        except AblyException as exc:
            raise TransientPublishFailure(channel, event, str(exc)) from exc

    def client_config(self) -> Dict[str, object]:
        config = super().client_config()
        config["keyName"] = self.key_name
        return config


def build_bus(settings) -> RealtimeBus:
    """Pick the bus named by ``settings.realtime_backend``."""
    backend = (settings.realtime_backend or "memory").lower()
    if backend == "none":
        return NullBus()
    if backend == "pusher":
        creds = settings.pusher
        missing = [k for k in ("app_id", "key", "secret", "cluster") if not creds.get(k)]
        if missing:
            logger.error(
                "Pusher selected for %s but %s not set; using in-memory bus",
                settings.app_env,
                ", ".join(missing),
            )
            return InMemoryBus()
        logger.info("Using Pusher (%s cluster) for %s", creds["cluster"], settings.app_env)
        return PusherBus(timeout=settings.publish_timeout, **creds)
    if backend == "ably":
        if not settings.ably_api_key:
            logger.error(
                "Ably selected for %s but ABLY_API_KEY not set; using in-memory bus",
                settings.app_env,
            )
            return InMemoryBus()
        logger.info("Using Ably for %s", settings.app_env)
        return AblyBus(settings.ably_api_key, timeout=settings.publish_timeout)
    if backend != "memory":
        logger.warning("Unknown realtime backend %r; using in-memory bus", backend)
    return InMemoryBus()
