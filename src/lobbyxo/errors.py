"""Errors raised by LobbyXO operations.

Every error carries a stable ``code`` for clients and the HTTP status it
maps to. All of them are raised before any state is touched.
"""

from __future__ import annotations

from typing import Optional


class GameError(Exception):
    code = "game_error"
    status_code = 400
    default_message = "Game operation failed"

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"detail": self.message, "code": self.code}


# ---------- Not found ----------


class NotFound(GameError):
    code = "not_found"
    status_code = 404
    default_message = "Not found"


class GameNotFound(NotFound):
    code = "game_not_found"
    default_message = "Game not found"

    def __init__(self, game_id: str) -> None:
        self.game_id = game_id
        super().__init__(f"Game {game_id} not found")


# ---------- Preconditions ----------


class PreconditionFailed(GameError):
    code = "precondition_failed"
    status_code = 400


class InvalidRequest(PreconditionFailed):
    code = "invalid_request"
    default_message = "Invalid request"


class GameFull(PreconditionFailed):
    code = "game_full"
    default_message = "Game is full"


class GameNotJoinable(PreconditionFailed):
    code = "game_not_joinable"
    default_message = "Game is not accepting players"


class NotPlaying(PreconditionFailed):
    code = "not_playing"
    default_message = "Game is not in progress"


class InvalidCell(PreconditionFailed):
    code = "invalid_cell"

    def __init__(self, cell_index: object) -> None:
        self.cell_index = cell_index
        super().__init__(f"Cell {cell_index!r} is outside the board")


class CellTaken(PreconditionFailed):
    code = "cell_taken"

    def __init__(self, cell_index: int) -> None:
        self.cell_index = cell_index
        super().__init__(f"Cell {cell_index} is already taken")


class NotYourTurn(PreconditionFailed):
    code = "not_your_turn"
    default_message = "Not your turn"


class NotAPlayer(GameError):
    code = "not_a_player"
    status_code = 403

    def __init__(self, username: str) -> None:
        self.username = username
        super().__init__(f"{username} is not a player in this game")


# ---------- Conflicts ----------


class Conflict(GameError):
    code = "conflict"
    status_code = 409


class AlreadyJoined(Conflict):
    code = "already_joined"
    default_message = "Already in this game"


# ---------- Realtime ----------


class TransientPublishFailure(Exception):
    """A push to the realtime provider failed; logged, never surfaced."""

    def __init__(self, channel: str, event: str, reason: str) -> None:
        self.channel = channel
        self.event = event
        super().__init__(f"publish {event} on {channel} failed: {reason}")
