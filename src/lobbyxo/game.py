"""Core rules for LobbyXO: the game record and pure move logic."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Tuple

from .errors import CellTaken, InvalidCell, NotAPlayer, NotPlaying, NotYourTurn

Symbol = str  # "X" or "O"

WAITING = "waiting"
PLAYING = "playing"
FINISHED = "finished"

DRAW = "draw"
ABANDONED = "abandoned"

BOARD_SIZE = 9
MAX_PLAYERS = 2
SYMBOLS: Tuple[Symbol, Symbol] = ("X", "O")

WINNING_LINES: Tuple[Tuple[int, int, int], ...] = (
    (0, 1, 2),
    (3, 4, 5),
    (6, 7, 8),
    (0, 3, 6),
    (1, 4, 7),
    (2, 5, 8),
    (0, 4, 8),
    (2, 4, 6),
)


# ---------- Game record ----------


@dataclass
class Game:
    """One shared game as held by the store.

    ``symbols`` maps each seated username to the mark it plays; it is
    filled in when the second player arrives and never changes after.
    """

    name: str
    created_by: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    players: List[str] = field(default_factory=list)
    status: str = WAITING
    board: List[Optional[Symbol]] = field(default_factory=lambda: [None] * BOARD_SIZE)
    current_player: Optional[Symbol] = None
    winner: Optional[str] = None
    symbols: Dict[str, Symbol] = field(default_factory=dict)
    last_move: Optional[Dict[str, object]] = None
    created_at: float = field(default_factory=time.time)
    updated_at: float = 0.0

    def __post_init__(self) -> None:
        if not self.updated_at:
            self.updated_at = self.created_at

    def copy(self) -> "Game":
        return replace(
            self,
            players=list(self.players),
            board=list(self.board),
            symbols=dict(self.symbols),
            last_move=dict(self.last_move) if self.last_move else None,
        )

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "name": self.name,
            "createdBy": self.created_by,
            "players": list(self.players),
            "status": self.status,
            "board": list(self.board),
            "currentPlayer": self.current_player,
            "winner": self.winner,
            "symbols": dict(self.symbols),
            "lastMove": dict(self.last_move) if self.last_move else None,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


# ---------- Outcome ----------


@dataclass(frozen=True)
class Outcome:
    kind: str  # "none", "win" or "draw"
    symbol: Optional[Symbol] = None

    @property
    def decided(self) -> bool:
        return self.kind != "none"


NO_OUTCOME = Outcome("none")


def check_outcome(board: List[Optional[Symbol]]) -> Outcome:
    """Report the first completed line, a draw on a full board, or nothing."""
    for a, b, c in WINNING_LINES:
        v = board[a]
        if v is not None and v == board[b] == board[c]:
            return Outcome("win", v)
    if all(cell is not None for cell in board):
        return Outcome("draw")
    return NO_OUTCOME


def other_symbol(symbol: Symbol) -> Symbol:
    return "O" if symbol == "X" else "X"


def symbol_for(game: Game, username: str) -> Optional[Symbol]:
    return game.symbols.get(username)


# ---------- Moves ----------


@dataclass
class MoveResult:
    game: Game
    symbol: Symbol
    ended: bool = False


def apply_move(
    game: Game, cell_index: int, username: str, now: Optional[float] = None
) -> MoveResult:
    """Validate and play a move, returning a new game record.

    The input game is never modified, so a rejected move leaves the caller's
    copy exactly as it was.
    """
    if game.status != PLAYING:
        raise NotPlaying()
    if (
        isinstance(cell_index, bool)
        or not isinstance(cell_index, int)
        or not 0 <= cell_index < BOARD_SIZE
    ):
        raise InvalidCell(cell_index)
    if game.board[cell_index] is not None:
        raise CellTaken(cell_index)
    symbol = symbol_for(game, username)
    if symbol is None:
        raise NotAPlayer(username)
    if symbol != game.current_player:
        raise NotYourTurn()

    updated = game.copy()
    updated.board[cell_index] = symbol
    updated.last_move = {"cellIndex": cell_index, "symbol": symbol, "player": username}
    updated.updated_at = time.time() if now is None else now

    outcome = check_outcome(updated.board)
    if outcome.decided:
        updated.status = FINISHED
        updated.winner = outcome.symbol if outcome.kind == "win" else DRAW
        updated.current_player = None
        return MoveResult(game=updated, symbol=symbol, ended=True)

    updated.current_player = other_symbol(symbol)
    return MoveResult(game=updated, symbol=symbol)


def start_game(game: Game, first: Symbol) -> None:
    """Seat both players and hand the first turn to ``first``.

    The creator always plays X and the second entrant O.
    """
    game.symbols = {game.players[0]: SYMBOLS[0], game.players[1]: SYMBOLS[1]}
    game.status = PLAYING
    game.current_player = first


def abandon(game: Game) -> None:
    game.status = FINISHED
    game.winner = ABANDONED
    game.current_player = None
