"""Per-player win/loss/draw tallies."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Dict

WIN = "win"
LOSS = "loss"
DRAW = "draw"


@dataclass
class PlayerStatistics:
    wins: int = 0
    losses: int = 0
    draws: int = 0

    @property
    def total_games(self) -> int:
        return self.wins + self.losses + self.draws

    def to_dict(self) -> Dict[str, int]:
        return {
            "wins": self.wins,
            "losses": self.losses,
            "draws": self.draws,
            "totalGames": self.total_games,
        }


class StatisticsStore:
    def __init__(self) -> None:
        self._stats: Dict[str, PlayerStatistics] = {}
        self._lock = threading.Lock()

    def record(self, username: str, result: str) -> None:
        if result not in (WIN, LOSS, DRAW):
            raise ValueError(f"Unknown result {result!r}")
        with self._lock:
            stats = self._stats.setdefault(username, PlayerStatistics())
            if result == WIN:
                stats.wins += 1
            elif result == LOSS:
                stats.losses += 1
            else:
                stats.draws += 1

    def get(self, username: str) -> PlayerStatistics:
        with self._lock:
            stats = self._stats.get(username)
            if stats is None:
                return PlayerStatistics()
            return PlayerStatistics(stats.wins, stats.losses, stats.draws)
