"""Tests for the realtime bus backends."""

import asyncio

import pytest
from ably import AblyException
from pusher.errors import PusherBadRequest

from lobbyxo.config import Settings
from lobbyxo.realtime import (
    EVENTS,
    AblyBus,
    LOBBY_CHANNEL,
    InMemoryBus,
    NullBus,
    PusherBus,
    build_bus,
    game_channel,
)


def test_channel_names():
    assert LOBBY_CHANNEL == "lobby"
    assert game_channel("abc") == "game-abc"
    with pytest.raises(ValueError):
        game_channel("")
    assert len(EVENTS) == 7


def test_subscriber_receives_only_its_channel(bus):
    lobby = bus.subscribe(LOBBY_CHANNEL)
    game = bus.subscribe(game_channel("g1"), event="player-moved")
    bus.publish(LOBBY_CHANNEL, "game-created", {"n": 1})
    bus.publish(game_channel("g1"), "player-joined", {"n": 2})
    bus.publish(game_channel("g1"), "player-moved", {"n": 3})

    assert [e.payload["n"] for e in lobby.drain()] == [1]
    assert [e.payload["n"] for e in game.drain()] == [3]


def test_event_ids_increase(bus):
    sub = bus.subscribe(LOBBY_CHANNEL)
    for i in range(3):
        bus.publish(LOBBY_CHANNEL, "game-updated", {"i": i})
    ids = [e.id for e in sub.drain()]
    assert ids == sorted(ids)
    assert len(set(ids)) == 3


def test_closed_subscription_stops_receiving(bus):
    with bus.subscribe(LOBBY_CHANNEL) as sub:
        pass
    bus.publish(LOBBY_CHANNEL, "game-updated", {})
    assert sub.closed
    assert sub.get(timeout=0) is None


def test_null_bus_accepts_everything():
    bus = NullBus()
    assert bus.publish(LOBBY_CHANNEL, "game-created", {}) is True
    with pytest.raises(NotImplementedError):
        bus.subscribe(LOBBY_CHANNEL)


def _pusher_bus():
    return PusherBus(app_id="1", key="public-key", secret="s3cret", cluster="eu")


def test_pusher_failure_is_logged_not_raised(caplog):
    bus = _pusher_bus()

    class FailingClient:
        def trigger(self, channel, event, payload):
            raise PusherBadRequest("rejected")

    bus._client = FailingClient()
    assert bus.publish(LOBBY_CHANNEL, "game-created", {}) is False
    assert "game-created" in caplog.text


def test_pusher_forwards_trigger():
    bus = _pusher_bus()
    calls = []

    class RecordingClient:
        def trigger(self, channel, event, payload):
            calls.append((channel, event, payload))

    bus._client = RecordingClient()
    assert bus.publish("game-1", "player-moved", {"cellIndex": 4}) is True
    assert calls == [("game-1", "player-moved", {"cellIndex": 4})]


def test_pusher_client_config_hides_secret():
    config = _pusher_bus().client_config()
    assert config == {
        "backend": "pusher",
        "lobbyChannel": "lobby",
        "key": "public-key",
        "cluster": "eu",
    }


def test_build_bus_selects_backend():
    assert isinstance(build_bus(Settings(realtime_backend="memory")), InMemoryBus)
    assert isinstance(build_bus(Settings(realtime_backend="none")), NullBus)
    pusher_settings = Settings(
        realtime_backend="pusher",
        pusher={"app_id": "1", "key": "k", "secret": "s", "cluster": "us2"},
    )
    assert isinstance(build_bus(pusher_settings), PusherBus)


def test_build_bus_falls_back_without_credentials(caplog):
    bus = build_bus(Settings(realtime_backend="pusher", pusher={"key": "k"}))
    assert isinstance(bus, InMemoryBus)
    assert "app_id" in caplog.text


class _AblyChannel:
    def __init__(self, name, calls, error=None, delay=0.0):
        self.name = name
        self._calls = calls
        self._error = error
        self._delay = delay

    async def publish(self, event, payload):
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._error is not None:
            raise self._error
        self._calls.append((self.name, event, payload))


class _AblyClient:
    def __init__(self, calls, **channel_options):
        self.calls = calls
        self.closed = False
        self._options = channel_options
        self.channels = self

    def get(self, name):
        return _AblyChannel(name, self.calls, **self._options)

    async def close(self):
        self.closed = True


def _ably_bus(**channel_options):
    bus = AblyBus("appid.keyid:s3cret", timeout=0.5)
    calls = []
    clients = []

    def make_client():
        client = _AblyClient(calls, **channel_options)
        clients.append(client)
        return client

    bus._client = make_client
    return bus, calls, clients


def test_ably_forwards_publish():
    bus, calls, clients = _ably_bus()
    assert bus.publish("game-1", "player-moved", {"cellIndex": 4}) is True
    assert calls == [("game-1", "player-moved", {"cellIndex": 4})]
    assert clients[0].closed


def test_ably_failure_is_logged_not_raised(caplog):
    bus, calls, clients = _ably_bus(error=AblyException("rejected", 400, 40000))
    assert bus.publish(LOBBY_CHANNEL, "game-created", {}) is False
    assert calls == []
    assert clients[0].closed
    assert "game-created" in caplog.text


def test_ably_publish_times_out(caplog):
    bus, calls, _ = _ably_bus(delay=5.0)
    assert bus.publish(LOBBY_CHANNEL, "game-updated", {}) is False
    assert calls == []
    assert "timed out" in caplog.text


def test_ably_client_config_hides_secret():
    config = AblyBus("appid.keyid:s3cret").client_config()
    assert config == {"backend": "ably", "lobbyChannel": "lobby", "keyName": "appid.keyid"}
    assert "s3cret" not in str(config)


def test_build_bus_selects_ably():
    bus = build_bus(Settings(realtime_backend="ably", ably_api_key="appid.keyid:s3cret"))
    assert isinstance(bus, AblyBus)


def test_build_bus_falls_back_without_ably_key(caplog):
    bus = build_bus(Settings(realtime_backend="ably"))
    assert isinstance(bus, InMemoryBus)
    assert "ABLY_API_KEY" in caplog.text
