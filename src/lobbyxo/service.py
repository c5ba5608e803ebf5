"""Game orchestration: the create/join/move/leave state machine.

Each operation runs its read-modify-write under the game's lock in the
store, then publishes the resulting snapshot once the lock is released.
Rejections raise a :class:`~lobbyxo.errors.GameError` before anything is
written, so a failed call leaves the game untouched and publishes nothing.
"""

from __future__ import annotations

import logging
import random
import time
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from . import realtime
from .errors import (
    AlreadyJoined,
    GameError,
    GameFull,
    GameNotJoinable,
    InvalidRequest,
    NotAPlayer,
)
from .game import (
    ABANDONED,
    DRAW,
    MAX_PLAYERS,
    PLAYING,
    SYMBOLS,
    WAITING,
    Game,
    MoveResult,
    abandon,
    apply_move,
    start_game,
)
from .realtime import LOBBY_CHANNEL, RealtimeBus, game_channel
from .stats import LOSS, WIN, PlayerStatistics, StatisticsStore
from .stats import DRAW as DRAW_RESULT
from .store import CleanupPolicy, GameStore, SweepResult

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 64
MAX_USERNAME_LENGTH = 32

# (channel, event, extra payload fields) queued during an operation
Notice = Tuple[str, str, Dict[str, object]]


def _clean(value: object, label: str, limit: int) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidRequest(f"{label} is required")
    value = value.strip()
    if len(value) > limit:
        raise InvalidRequest(f"{label} must be at most {limit} characters")
    return value


class GameService:
    def __init__(
        self,
        store: GameStore,
        bus: RealtimeBus,
        stats: Optional[StatisticsStore] = None,
        policy: Optional[CleanupPolicy] = None,
        clock: Callable[[], float] = time.time,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.store = store
        self.bus = bus
        self.stats = stats if stats is not None else StatisticsStore()
        self.policy = policy or CleanupPolicy()
        self._clock = clock
        self._rng = rng or random.Random()

    # ---- queries ----

    def list_games(self) -> List[Game]:
        return self.store.list()

    def get_game(self, game_id: str) -> Game:
        return self.store.get(game_id)

    def get_statistics(self, username: str) -> PlayerStatistics:
        return self.stats.get(username)

    # ---- operations ----

    def create_game(self, name: str, username: str) -> Game:
        with self._rejections("create", None):
            name = _clean(name, "Game name", MAX_NAME_LENGTH)
            username = _clean(username, "Username", MAX_USERNAME_LENGTH)
        game = self.store.create(name, username)
        logger.info("game %s (%r) created by %s", game.id, game.name, username)
        self._publish(game, [(LOBBY_CHANNEL, realtime.GAME_CREATED, {})])
        return game

    def join_game(self, game_id: str, username: str) -> Game:
        with self._rejections("join", game_id):
            username = _clean(username, "Username", MAX_USERNAME_LENGTH)
            with self.store.locked(game_id):
                game = self.store.get(game_id)
                if len(game.players) >= MAX_PLAYERS:
                    raise GameFull()
                if username in game.players:
                    raise AlreadyJoined()
                if game.status != WAITING:
                    raise GameNotJoinable()

                game.players.append(username)
                game.updated_at = self._clock()
                if len(game.players) == MAX_PLAYERS:
                    start_game(game, self._rng.choice(SYMBOLS))
                self.store.put(game_id, game)

        if game.status == PLAYING:
            logger.info(
                "game %s started: %s, %s moves first", game_id, game.symbols, game.current_player
            )
        self._publish(
            game,
            [
                (LOBBY_CHANNEL, realtime.GAME_UPDATED, {}),
                (game_channel(game_id), realtime.PLAYER_JOINED, {"player": username}),
            ],
        )
        return game

    def make_move(self, game_id: str, cell_index: int, username: str) -> MoveResult:
        with self._rejections("move", game_id):
            with self.store.locked(game_id):
                game = self.store.get(game_id)
                result = apply_move(game, cell_index, username, now=self._clock())
                self.store.put(game_id, result.game)
                if result.ended:
                    self._record_results(result.game)

        game = result.game
        notices: List[Notice] = [
            (
                game_channel(game_id),
                realtime.PLAYER_MOVED,
                {"player": username, "cellIndex": cell_index, "symbol": result.symbol},
            ),
            (LOBBY_CHANNEL, realtime.GAME_UPDATED, {}),
        ]
        if result.ended:
            logger.info("game %s finished: winner=%s", game_id, game.winner)
            notices.append((game_channel(game_id), realtime.GAME_ENDED, {"winner": game.winner}))
        self._publish(game, notices)
        return result

    def leave_game(self, game_id: str, username: str) -> Optional[Game]:
        """Remove ``username`` from the game.

        Returns the remaining game, or ``None`` when the last player left and
        the game was deleted. Leaving a game in progress forfeits it.
        """
        with self._rejections("leave", game_id):
            with self.store.locked(game_id):
                game = self.store.get(game_id)
                if username not in game.players:
                    raise NotAPlayer(username)
                was_playing = game.status == PLAYING
                game.players.remove(username)
                game.updated_at = self._clock()

                if not game.players:
                    self.store.delete(game_id)
                else:
                    if was_playing:
                        abandon(game)
                        self.stats.record(game.players[0], WIN)
                        self.stats.record(username, LOSS)
                    self.store.put(game_id, game)

        channel = game_channel(game_id)
        if not game.players:
            logger.info("game %s removed: last player %s left", game_id, username)
            self._publish(
                game,
                [
                    (LOBBY_CHANNEL, realtime.GAME_REMOVED, {"reason": "empty"}),
                    (channel, realtime.PLAYER_LEFT, {"player": username}),
                ],
            )
            return None

        notices: List[Notice] = [
            (LOBBY_CHANNEL, realtime.GAME_UPDATED, {}),
            (channel, realtime.PLAYER_LEFT, {"player": username}),
        ]
        if was_playing:
            logger.info("game %s forfeited by %s", game_id, username)
            notices.append((channel, realtime.GAME_ENDED, {"winner": ABANDONED}))
        self._publish(game, notices)
        return game

    def cleanup(self, policy: Optional[CleanupPolicy] = None) -> SweepResult:
        result = self.store.sweep(self._clock(), policy or self.policy)
        for game in result.removed:
            self._publish(game, [(LOBBY_CHANNEL, realtime.GAME_REMOVED, {"reason": "stale"})])
        for game in result.updated:
            # An idle game counts as a draw for both seats.
            for player in game.players:
                self.stats.record(player, DRAW_RESULT)
            self._publish(
                game,
                [
                    (LOBBY_CHANNEL, realtime.GAME_UPDATED, {}),
                    (game_channel(game.id), realtime.GAME_ENDED, {"winner": game.winner}),
                ],
            )
        if result.removed or result.updated:
            logger.info(
                "cleanup removed %d games, abandoned %d idle games",
                result.removed_count,
                result.updated_count,
            )
        return result

    # ---- helpers ----

    def _record_results(self, game: Game) -> None:
        if game.winner == DRAW:
            for player in game.players:
                self.stats.record(player, DRAW_RESULT)
            return
        for player in game.players:
            self.stats.record(player, WIN if game.symbols.get(player) == game.winner else LOSS)

    def _publish(self, game: Game, notices: List[Notice]) -> None:
        snapshot = game.to_dict()
        for channel, event, extra in notices:
            payload: Dict[str, object] = {"game": snapshot, "timestamp": self._clock()}
            payload.update(extra)
            self.bus.publish(channel, event, payload)

    @contextmanager
    def _rejections(self, operation: str, game_id: Optional[str]) -> Iterator[None]:
        try:
            yield
        except GameError as exc:
            logger.info("%s rejected for game %s: %s (%s)", operation, game_id, exc.code, exc)
            raise
