"""LobbyXO package exposing the game engine, service, and web application."""

from .game import Game, apply_move, check_outcome
from .service import GameService
from .store import CleanupPolicy, GameStore
from .api import create_app

__all__ = [
    "CleanupPolicy",
    "Game",
    "GameService",
    "GameStore",
    "apply_move",
    "check_outcome",
    "create_app",
]
