"""FastAPI application exposing the LobbyXO game service over HTTP."""

from __future__ import annotations

import json
import re
from contextlib import asynccontextmanager
from typing import Dict, Iterator, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .config import Settings
from .errors import GameError
from .game import BOARD_SIZE
from .realtime import InMemoryBus, Subscription, build_bus
from .scheduler import CleanupScheduler
from .service import MAX_NAME_LENGTH, MAX_USERNAME_LENGTH, GameService
from .store import GameStore

SSE_KEEPALIVE_SECONDS = 15.0
CHANNEL_PATTERN = re.compile(r"^(lobby|game-[A-Za-z0-9_-]+)$")


class _Request(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)


class CreateGameRequest(_Request):
    """Request payload for opening a new game in the lobby."""

    name: str = Field(min_length=1, max_length=MAX_NAME_LENGTH, alias="gameName")
    username: str = Field(min_length=1, max_length=MAX_USERNAME_LENGTH)


class PlayerRequest(_Request):
    """Request payload for joining or leaving a game."""

    username: str = Field(min_length=1, max_length=MAX_USERNAME_LENGTH)


class MoveRequest(PlayerRequest):
    """Request payload for placing a mark on the board."""

    cell_index: int = Field(alias="cellIndex")

    @field_validator("cell_index", mode="before")
    @classmethod
    def reject_non_integers(cls, value: object) -> object:
        # Out-of-range integers are left to the service so they report invalid_cell.
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"cellIndex must be an integer between 0 and {BOARD_SIZE - 1}")
        return value


def build_service(settings: Settings) -> GameService:
    return GameService(
        store=GameStore(),
        bus=build_bus(settings),
        policy=settings.cleanup_policy,
    )


def _sse_frames(sub: Subscription) -> Iterator[str]:
    try:
        yield f": subscribed to {sub.channel}\n\n"
        while True:
            item = sub.get(timeout=SSE_KEEPALIVE_SECONDS)
            if item is None:
                yield ": keep-alive\n\n"
                continue
            yield f"id: {item.id}\nevent: {item.event}\ndata: {json.dumps(item.payload)}\n\n"
    finally:
        sub.close()


def create_app(
    settings: Optional[Settings] = None, service: Optional[GameService] = None
) -> FastAPI:
    """Build the application; each call gets its own store, bus and scheduler."""

    settings = settings or Settings.from_env()
    service = service or build_service(settings)
    cleanup = CleanupScheduler(service, settings.cleanup_interval)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        cleanup.start()
        try:
            yield
        finally:
            cleanup.shutdown()
            service.bus.close()

    app = FastAPI(
        title="LobbyXO",
        description="Multiplayer tic-tac-toe with a realtime lobby",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.service = service
    app.state.cleanup = cleanup

    @app.exception_handler(GameError)
    async def game_error_handler(_request: Request, exc: GameError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.post("/api/games", status_code=201)
    def create_game(request: CreateGameRequest) -> Dict[str, object]:
        game = service.create_game(request.name, request.username)
        return {"game": game.to_dict()}

    @app.get("/api/games")
    def list_games() -> Dict[str, object]:
        return {"games": [game.to_dict() for game in service.list_games()]}

    @app.get("/api/games/{game_id}")
    def get_game(game_id: str) -> Dict[str, object]:
        return {"game": service.get_game(game_id).to_dict()}

    @app.post("/api/games/{game_id}/join")
    def join_game(game_id: str, request: PlayerRequest) -> Dict[str, object]:
        game = service.join_game(game_id, request.username)
        return {"game": game.to_dict()}

    @app.post("/api/games/{game_id}/move")
    def make_move(game_id: str, request: MoveRequest) -> Dict[str, object]:
        result = service.make_move(game_id, request.cell_index, request.username)
        return {"game": result.game.to_dict(), "winner": result.game.winner}

    @app.post("/api/games/{game_id}/leave")
    def leave_game(game_id: str, request: PlayerRequest) -> Dict[str, object]:
        service.leave_game(game_id, request.username)
        return {"success": True}

    @app.get("/api/stats/{username}")
    def get_statistics(username: str) -> Dict[str, object]:
        stats = service.get_statistics(username)
        return {"username": username, **stats.to_dict()}

    @app.post("/api/cleanup")
    def run_cleanup() -> Dict[str, int]:
        result = service.cleanup()
        return {"removed": result.removed_count, "updated": result.updated_count}

    @app.get("/api/realtime-config")
    def realtime_config() -> Dict[str, object]:
        return service.bus.client_config()

    @app.get("/api/events/{channel}")
    def stream_events(channel: str) -> StreamingResponse:
        if not isinstance(service.bus, InMemoryBus):
            raise HTTPException(
                status_code=404,
                detail=f"Event stream unavailable with the {service.bus.name} backend",
            )
        if not CHANNEL_PATTERN.match(channel):
            raise HTTPException(status_code=404, detail="Unknown channel")
        sub = service.bus.subscribe(channel)
        return StreamingResponse(
            _sse_frames(sub),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    @app.get("/api/health")
    def health() -> Dict[str, object]:
        return {
            "status": "ok",
            "games": len(service.store),
            "realtime": service.bus.name,
        }

    return app
