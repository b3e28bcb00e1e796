from __future__ import annotations

import asyncio
import logging

from puzzlehub.core.identity_store import IdentityStore
from puzzlehub.core.profile_cache import ProfileCache
from puzzlehub.core.remote_directory import RemoteDirectory
from puzzlehub.infra.redis_client import create_redis
from puzzlehub.player_session import BootstrapConfig, PlayerSession
from puzzlehub.runtime.singleton import get_session, init_session, reset_session_for_tests
from puzzlehub.settings import Settings


logger = logging.getLogger(__name__)

_background: set[asyncio.Task[object]] = set()


def build_session(settings: Settings) -> PlayerSession:
    if not settings.supabase_url:
        raise RuntimeError("Set SUPABASE_URL (and SUPABASE_ANON_KEY) to reach the players directory")

    directory = RemoteDirectory.from_url(
        settings.supabase_url,
        api_key=settings.supabase_key,
        timeout_s=settings.http_timeout_s,
    )
    cache = ProfileCache(
        directory,
        refresh_interval_s=settings.refresh_interval_s,
        max_attempts=settings.fetch_attempts,
        retry_delay_s=settings.retry_delay_s,
    )
    return PlayerSession(
        store=IdentityStore(create_redis(settings.redis_url)),
        directory=directory,
        cache=cache,
        config=BootstrapConfig(
            sentinel_player_id=settings.sentinel_player_id,
            username_prefix=settings.username_prefix,
        ),
    )


def start_session_for_app() -> PlayerSession:
    """Install the session, bootstrap it in the background and start periodic refresh."""

    session = init_session()
    task = asyncio.create_task(session.bootstrap(), name="player-bootstrap-startup")
    _background.add(task)
    task.add_done_callback(_background.discard)
    session.cache.activate()
    return session


async def stop_session_for_app() -> None:
    try:
        session = get_session()
    except RuntimeError:
        return
    await session.aclose()
    reset_session_for_tests()
    logger.info("Player session closed")
