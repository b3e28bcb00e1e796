from __future__ import annotations

import logging
import random
from typing import Any

import httpx
from pydantic import ValidationError

from puzzlehub.api.models import Profile
from puzzlehub.core.errors import NotFoundError, RemoteError


logger = logging.getLogger(__name__)

PLAYERS_TABLE = "players"

# PostgREST returns a single JSON object (instead of an array) for this media type,
# and answers 406 / PGRST116 when the filter matched no rows.
SINGLE_OBJECT = "application/vnd.pgrst.object+json"
NO_ROWS_CODE = "PGRST116"

USERNAME_SUFFIX_BOUND = 10_000


def generate_username(seed: str, *, rng: random.Random | None = None) -> str:
    """`seed` followed by a uniform integer in [0, 10000), e.g. `Player4821`."""

    return f"{seed}{(rng or random).randrange(USERNAME_SUFFIX_BOUND)}"


def _error_code(resp: httpx.Response) -> str | None:
    try:
        body = resp.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        code = body.get("code")
        return str(code) if code is not None else None
    return None


class RemoteDirectory:
    """Client for the remote `players` table (Supabase REST / PostgREST).

    Contract:
      - `create_profile(seed)` inserts a fresh unlinked row and returns it.
      - `fetch_profile(id)` is a point lookup.

    Transport failures and unexpected statuses raise `RemoteError`; a lookup that
    matches no row raises `NotFoundError`.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        table: str = PLAYERS_TABLE,
        rng: random.Random | None = None,
    ) -> None:
        self._client = client
        self._path = f"/rest/v1/{table}"
        self._rng = rng or random.Random()

    @classmethod
    def from_url(
        cls,
        base_url: str,
        *,
        api_key: str | None = None,
        timeout_s: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
        rng: random.Random | None = None,
    ) -> RemoteDirectory:
        headers: dict[str, str] = {}
        if api_key:
            headers["apikey"] = api_key
            headers["Authorization"] = f"Bearer {api_key}"
        client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout_s,
            transport=transport,
        )
        return cls(client, rng=rng)

    async def create_profile(self, username_seed: str = "Player") -> Profile:
        username = generate_username(username_seed, rng=self._rng)
        resp = await self._request(
            "POST",
            self._path,
            json=[{"username": username}],
            headers={"Accept": SINGLE_OBJECT, "Prefer": "return=representation"},
        )
        if resp.status_code not in (200, 201):
            raise RemoteError(f"create player failed: HTTP {resp.status_code}")
        profile = self._parse(resp)
        logger.info("Created remote player id=%s username=%s", profile.id, profile.username)
        return profile

    async def fetch_profile(self, player_id: int) -> Profile:
        resp = await self._request(
            "GET",
            self._path,
            params={"id": f"eq.{player_id}", "select": "*"},
            headers={"Accept": SINGLE_OBJECT},
        )
        if resp.status_code == 404 or (resp.status_code == 406 and _error_code(resp) in (NO_ROWS_CODE, None)):
            raise NotFoundError(player_id)
        if resp.status_code != 200:
            raise RemoteError(f"fetch player {player_id} failed: HTTP {resp.status_code}")
        return self._parse(resp, no_row=NotFoundError(player_id))

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise RemoteError(f"{method} {url} failed: {e}") from e

    @staticmethod
    def _parse(resp: httpx.Response, *, no_row: RemoteError | None = None) -> Profile:
        try:
            body = resp.json()
        except ValueError as e:
            raise RemoteError("remote directory returned invalid JSON") from e

        # Some gateways ignore the singular media type and answer with an array.
        if isinstance(body, list):
            if not body:
                raise no_row or RemoteError("remote directory returned no row")
            body = body[0]

        try:
            return Profile.model_validate(body)
        except ValidationError as e:
            raise RemoteError(f"unexpected player payload: {e}") from e
