"""In-memory registry of active games."""

from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Optional

from .errors import GameNotFound
from .game import FINISHED, PLAYING, WAITING, Game, abandon


@dataclass(frozen=True)
class CleanupPolicy:
    """Staleness thresholds, all in seconds. ``0`` disables a rule."""

    waiting_ttl: float = 60 * 30
    finished_ttl: float = 60 * 10
    max_age: float = 60 * 60
    idle_ttl: float = 60 * 5

    def removal_reason(self, game: Game, now: float) -> Optional[str]:
        age = now - game.created_at
        if not game.players:
            return "empty"
        if self.max_age and age >= self.max_age:
            return "max-age"
        if game.status == WAITING and self.waiting_ttl and age >= self.waiting_ttl:
            return "waiting-too-long"
        if game.status == FINISHED and self.finished_ttl and age >= self.finished_ttl:
            return "finished"
        return None

    def is_idle(self, game: Game, now: float) -> bool:
        return (
            game.status == PLAYING
            and bool(self.idle_ttl)
            and now - game.updated_at >= self.idle_ttl
        )


@dataclass
class SweepResult:
    removed: List[Game] = field(default_factory=list)
    updated: List[Game] = field(default_factory=list)

    @property
    def removed_count(self) -> int:
        return len(self.removed)

    @property
    def updated_count(self) -> int:
        return len(self.updated)


class GameStore:
    """Owns every game record for the lifetime of the process.

    Reads hand out copies; the only way to change a stored game is ``put``.
    Callers doing a read-modify-write hold ``locked(game_id)`` around it.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._games: Dict[str, Game] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._table_lock = threading.Lock()

    def __len__(self) -> int:
        with self._table_lock:
            return len(self._games)

    @contextmanager
    def locked(self, game_id: str) -> Iterator[None]:
        with self._table_lock:
            # Unknown ids get a throwaway lock; the caller will hit NotFound.
            lock = self._locks.get(game_id) or threading.Lock()
        with lock:
            yield

    def create(self, name: str, creator: str) -> Game:
        now = self._clock()
        game = Game(name=name, created_by=creator, players=[creator], created_at=now)
        with self._table_lock:
            self._games[game.id] = game
            self._locks[game.id] = threading.Lock()
        return game.copy()

    def get(self, game_id: str) -> Game:
        with self._table_lock:
            game = self._games.get(game_id)
            if game is None:
                raise GameNotFound(game_id)
            return game.copy()

    def list(self) -> List[Game]:
        with self._table_lock:
            games = [g.copy() for g in self._games.values()]
        games.sort(key=lambda g: g.created_at)
        return games

    def put(self, game_id: str, game: Game) -> None:
        with self._table_lock:
            if game_id not in self._games:
                raise GameNotFound(game_id)
            self._games[game_id] = game.copy()

    def delete(self, game_id: str) -> Optional[Game]:
        with self._table_lock:
            self._locks.pop(game_id, None)
            return self._games.pop(game_id, None)

    def sweep(self, now: float, policy: CleanupPolicy) -> SweepResult:
        """Delete stale games and abandon idle ones, one game lock at a time."""
        result = SweepResult()
        with self._table_lock:
            game_ids = list(self._games)
        for game_id in game_ids:
            with self.locked(game_id):
                with self._table_lock:
                    game = self._games.get(game_id)
                if game is None:
                    continue
                if policy.removal_reason(game, now):
                    self.delete(game_id)
                    result.removed.append(game.copy())
                elif policy.is_idle(game, now):
                    updated = game.copy()
                    abandon(updated)
                    updated.updated_at = now
                    self.put(game_id, updated)
                    result.updated.append(updated.copy())
        return result
