import random

import pytest

from lobbyxo.game import Game
from lobbyxo.realtime import InMemoryBus
from lobbyxo.service import GameService
from lobbyxo.stats import StatisticsStore
from lobbyxo.store import CleanupPolicy, GameStore


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def bus():
    bus = InMemoryBus()
    yield bus
    bus.close()


@pytest.fixture()
def store(clock):
    return GameStore(clock=clock)


@pytest.fixture()
def policy():
    return CleanupPolicy(waiting_ttl=300, finished_ttl=120, max_age=3600, idle_ttl=600)


@pytest.fixture()
def service(store, bus, clock, policy):
    return GameService(
        store=store,
        bus=bus,
        stats=StatisticsStore(),
        policy=policy,
        clock=clock,
        rng=random.Random(7),
    )


def mover(game: Game) -> str:
    """Username whose turn it is."""
    return next(p for p, s in game.symbols.items() if s == game.current_player)


def waiter(game: Game) -> str:
    """Username waiting for the other player to move."""
    return next(p for p, s in game.symbols.items() if s != game.current_player)


@pytest.fixture()
def started(service):
    game = service.create_game("G", "alice")
    return service.join_game(game.id, "bob")
