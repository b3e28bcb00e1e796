from __future__ import annotations

import os
from dataclasses import dataclass

from puzzlehub.infra.redis_client import get_redis_url


@dataclass(frozen=True, slots=True)
class Settings:
    redis_url: str
    # Supabase project URL, e.g. https://abcd.supabase.co
    supabase_url: str | None
    supabase_key: str | None
    refresh_interval_s: float = 60.0
    fetch_attempts: int = 3
    retry_delay_s: float = 1.0
    http_timeout_s: float = 10.0
    sentinel_player_id: int = 1
    username_prefix: str = "Player"
    log_level: str = "INFO"


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    return float(raw) if raw else default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    return int(raw) if raw else default


def settings_from_env() -> Settings:
    return Settings(
        redis_url=get_redis_url(),
        supabase_url=os.environ.get("SUPABASE_URL"),
        supabase_key=os.environ.get("SUPABASE_ANON_KEY"),
        refresh_interval_s=_env_float("PUZZLEHUB_REFRESH_INTERVAL_S", 60.0),
        fetch_attempts=_env_int("PUZZLEHUB_FETCH_ATTEMPTS", 3),
        retry_delay_s=_env_float("PUZZLEHUB_RETRY_DELAY_S", 1.0),
        http_timeout_s=_env_float("PUZZLEHUB_HTTP_TIMEOUT_S", 10.0),
        sentinel_player_id=_env_int("PUZZLEHUB_SENTINEL_PLAYER_ID", 1),
        username_prefix=os.environ.get("PUZZLEHUB_USERNAME_PREFIX", "Player"),
        log_level=os.environ.get("PUZZLEHUB_LOG_LEVEL", "INFO").upper(),
    )
