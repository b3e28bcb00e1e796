"""Bootstrap this installation's player identity once and print the resulting snapshot.

Contract
- Inputs: REDIS_URL, SUPABASE_URL, SUPABASE_ANON_KEY (see puzzlehub/settings.py).
- Output: the PlayerSnapshot as JSON on stdout.
- Side effects: may create a `players` row and persist its id under `puzzle_hub_player_id`.

Usage:
    uv run python scripts/bootstrap_player.py
"""

from __future__ import annotations

import asyncio
import logging

from puzzlehub.runtime.startup import build_session
from puzzlehub.settings import settings_from_env


async def _main() -> None:
    settings = settings_from_env()
    logging.basicConfig(level=settings.log_level)

    session = build_session(settings)
    try:
        snapshot = await session.bootstrap()
    finally:
        await session.aclose()
    print(snapshot.model_dump_json(indent=2))


if __name__ == "__main__":
    asyncio.run(_main())
