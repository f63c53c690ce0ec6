from __future__ import annotations

import os
from dataclasses import dataclass


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _list_env(name: str, default: str) -> tuple[str, ...]:
    raw = os.getenv(name, default)
    values = tuple(item.strip() for item in raw.split(",") if item.strip())
    return values or (default,)


@dataclass(frozen=True)
class Settings:
    app_env: str
    persistence_enabled: bool
    persistence_db_path: str
    database_url: str
    cors_allow_origins: tuple[str, ...]
    sse_keepalive_seconds: int
    subscriber_queue_size: int
    dashboard_refresh_seconds: int
    debug_routes_enabled: bool
    log_level: str


def load_settings() -> Settings:
    persistence_db_path = os.getenv("PERSISTENCE_DB_PATH", "data/recruiting.sqlite3").strip()
    database_url = os.getenv("DATABASE_URL", "").strip()
    if not database_url:
        database_url = f"sqlite:///{persistence_db_path.replace(chr(92), '/')}"
    return Settings(
        app_env=os.getenv("APP_ENV", "development"),
        persistence_enabled=_bool_env("PERSISTENCE_ENABLED", True),
        persistence_db_path=persistence_db_path,
        database_url=database_url,
        cors_allow_origins=_list_env("CORS_ALLOW_ORIGINS", "*"),
        sse_keepalive_seconds=max(1, min(300, _int_env("SSE_KEEPALIVE_SECONDS", 15))),
        subscriber_queue_size=max(1, min(10000, _int_env("SUBSCRIBER_QUEUE_SIZE", 100))),
        dashboard_refresh_seconds=max(5, min(3600, _int_env("DASHBOARD_REFRESH_SECONDS", 30))),
        debug_routes_enabled=_bool_env("DEBUG_ROUTES_ENABLED", True),
        log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO",
    )
