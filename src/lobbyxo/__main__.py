"""Entry point for running LobbyXO via ``python -m lobbyxo``."""

from __future__ import annotations

import logging

import uvicorn

from .config import Settings
from .api import create_app


def main() -> None:
    """Start the FastAPI-powered LobbyXO web server."""

    settings = Settings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port, reload=False)


if __name__ == "__main__":
    main()
