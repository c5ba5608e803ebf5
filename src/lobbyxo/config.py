"""Process configuration read from the environment (and ``.env``)."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional

from dotenv import load_dotenv

from .store import CleanupPolicy

ENV_SUFFIXES = {"development": "_DEV", "staging": "_STAGING", "production": "_PROD"}
PUSHER_VARS = {
    "app_id": "PUSHER_APP_ID",
    "key": "PUSHER_KEY",
    "secret": "PUSHER_SECRET",
    "cluster": "PUSHER_CLUSTER",
}


def _pusher_credentials(env: Mapping[str, str], app_env: str) -> Dict[str, str]:
    # Environment-specific names (PUSHER_KEY_PROD, ...) win over the plain ones.
    suffix = ENV_SUFFIXES.get(app_env, ENV_SUFFIXES["development"])
    creds: Dict[str, str] = {}
    for field_name, var in PUSHER_VARS.items():
        value = env.get(var + suffix) or env.get(var)
        if value:
            creds[field_name] = value
    return creds


@dataclass
class Settings:
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"
    app_env: str = "development"

    realtime_backend: str = "memory"
    pusher: Dict[str, str] = field(default_factory=dict)
    ably_api_key: str = ""
    publish_timeout: float = 5.0

    # Seconds between periodic sweeps; 0 turns the timer off.
    cleanup_interval: float = 120.0
    waiting_ttl: float = 60 * 30
    finished_ttl: float = 60 * 10
    max_age: float = 60 * 60
    idle_ttl: float = 60 * 5

    @property
    def cleanup_policy(self) -> CleanupPolicy:
        return CleanupPolicy(
            waiting_ttl=self.waiting_ttl,
            finished_ttl=self.finished_ttl,
            max_age=self.max_age,
            idle_ttl=self.idle_ttl,
        )

    @classmethod
    def from_env(
        cls, env: Optional[Mapping[str, str]] = None, dotenv: bool = True
    ) -> "Settings":
        if env is None:
            if dotenv:
                load_dotenv()
            env = os.environ

        app_env = env.get("APP_ENV") or env.get("LOBBYXO_ENV") or "development"
        return cls(
            host=env.get("LOBBYXO_HOST", "0.0.0.0"),
            port=int(env.get("LOBBYXO_PORT", "8000")),
            log_level=env.get("LOBBYXO_LOG_LEVEL", "INFO").upper(),
            app_env=app_env,
            realtime_backend=env.get("LOBBYXO_REALTIME_BACKEND", "memory"),
            pusher=_pusher_credentials(env, app_env),
            ably_api_key=env.get("ABLY_API_KEY", ""),
            publish_timeout=float(env.get("LOBBYXO_PUBLISH_TIMEOUT_SEC", "5")),
            cleanup_interval=float(env.get("LOBBYXO_CLEANUP_INTERVAL_SEC", "120")),
            waiting_ttl=float(env.get("LOBBYXO_WAITING_TTL_SEC", "1800")),
            finished_ttl=float(env.get("LOBBYXO_FINISHED_TTL_SEC", "600")),
            max_age=float(env.get("LOBBYXO_MAX_AGE_SEC", "3600")),
            idle_ttl=float(env.get("LOBBYXO_IDLE_TTL_SEC", "300")),
        )
