from __future__ import annotations

import redis
import redis.asyncio as redis_async

from puzzlehub.core.errors import StorageError


PLAYER_ID_KEY = "puzzle_hub_player_id"


class IdentityStore:
    """Durable local persistence for this installation's player id.

    Thin wrapper over Redis. Every driver failure is surfaced immediately as
    `StorageError`; callers own the fallback policy.
    """

    def __init__(self, r: redis_async.Redis, *, key: str = PLAYER_ID_KEY) -> None:
        self._r = r
        self.key = key

    async def get(self, key: str) -> str | None:
        try:
            return await self._r.get(key)
        except redis.RedisError as e:
            raise StorageError(f"identity store read failed: {e}") from e

    async def set(self, key: str, value: str) -> None:
        try:
            await self._r.set(key, value)
        except redis.RedisError as e:
            raise StorageError(f"identity store write failed: {e}") from e

    async def delete(self, key: str) -> None:
        try:
            await self._r.delete(key)
        except redis.RedisError as e:
            raise StorageError(f"identity store delete failed: {e}") from e

    async def load_player_id(self) -> int | None:
        raw = await self.get(self.key)
        if raw is None or raw == "":
            return None
        try:
            return int(raw)
        except ValueError as e:
            # Never silently replace a stored identity we cannot read.
            raise StorageError(f"stored player id is not an integer: {raw!r}") from e

    async def save_player_id(self, player_id: int) -> None:
        await self.set(self.key, str(player_id))

    async def forget_player_id(self) -> None:
        await self.delete(self.key)

    async def aclose(self) -> None:
        await self._r.aclose()
