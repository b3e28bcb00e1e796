from __future__ import annotations

import asyncio
import json
import os
import random
from collections.abc import Generator
from pathlib import Path
from typing import Any

import fakeredis
import httpx
import pytest

from puzzlehub.core.identity_store import IdentityStore
from puzzlehub.core.profile_cache import ProfileCache
from puzzlehub.core.remote_directory import RemoteDirectory
from puzzlehub.player_session import BootstrapConfig, PlayerSession


@pytest.fixture(scope="session", autouse=True)
def _load_dotenv_for_tests() -> None:
    """Load repo .env for local runs.

    This makes SUPABASE_URL / SUPABASE_ANON_KEY available to the env-gated live
    directory test without exporting them in your shell.

    In CI we don't auto-load `.env`, so live tests stay skipped unless explicitly
    opted-in with PUZZLEHUB_LOAD_DOTENV_FOR_TESTS=1.
    """

    if os.environ.get("CI") and os.environ.get("PUZZLEHUB_LOAD_DOTENV_FOR_TESTS") != "1":
        return

    env_path = Path(__file__).resolve().parents[1] / ".env"
    if env_path.exists():
        from dotenv import load_dotenv

        load_dotenv(dotenv_path=env_path, override=False)


class PlayersTable:
    """In-memory stand-in for the Supabase `players` table behind PostgREST.

    Knobs:
      - `fail_fetches`: the next N lookups answer 503.
      - `fail_creates`: inserts answer 503.
      - `unreachable`: every request raises a connection error.
      - `gate`: when set, lookups wait on it before answering (to hold a fetch in flight).
    """

    def __init__(self) -> None:
        self.rows: dict[int, dict[str, Any]] = {}
        self.next_id = 1000
        self.create_calls = 0
        self.fetch_calls = 0
        self.fail_fetches = 0
        self.fail_creates = False
        self.unreachable = False
        self.gate: asyncio.Event | None = None
        self.requests: list[httpx.Request] = []

    def add(self, player_id: int, *, username: str = "Player42", user_id: str | None = None) -> dict[str, Any]:
        row = {"id": player_id, "username": username, "user_id": user_id, "profile_emoji": None}
        self.rows[player_id] = row
        return row

    def link(self, player_id: int, user_id: str | None) -> None:
        self.rows[player_id]["user_id"] = user_id

    async def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.unreachable:
            raise httpx.ConnectError("directory unreachable", request=request)
        if request.url.path != "/rest/v1/players":
            return httpx.Response(404, json={"message": "relation does not exist"})

        if request.method == "POST":
            self.create_calls += 1
            if self.fail_creates:
                return httpx.Response(503, json={"message": "service unavailable"})
            (payload,) = json.loads(request.content)
            row = self.add(self.next_id, username=payload["username"])
            self.next_id += 1
            return httpx.Response(201, json=row)

        if request.method == "GET":
            self.fetch_calls += 1
            if self.gate is not None:
                await self.gate.wait()
            if self.fail_fetches > 0:
                self.fail_fetches -= 1
                return httpx.Response(503, json={"message": "service unavailable"})
            player_id = int(request.url.params["id"].removeprefix("eq."))
            row = self.rows.get(player_id)
            if row is None:
                return httpx.Response(
                    406,
                    json={"code": "PGRST116", "message": "JSON object requested, multiple (or no) rows returned"},
                )
            return httpx.Response(200, json=row)

        return httpx.Response(405)


@pytest.fixture()
def players_table() -> PlayersTable:
    return PlayersTable()


@pytest.fixture()
def directory(players_table: PlayersTable) -> RemoteDirectory:
    return RemoteDirectory.from_url(
        "http://players.test",
        api_key="anon-test-key",
        transport=httpx.MockTransport(players_table.handle),
        rng=random.Random(1234),
    )


@pytest.fixture()
def fake_redis() -> fakeredis.FakeAsyncRedis:
    return fakeredis.FakeAsyncRedis(decode_responses=True)


@pytest.fixture()
def store(fake_redis: fakeredis.FakeAsyncRedis) -> IdentityStore:
    return IdentityStore(fake_redis)


@pytest.fixture()
def broken_store() -> IdentityStore:
    server = fakeredis.FakeServer()
    server.connected = False
    return IdentityStore(fakeredis.FakeAsyncRedis(server=server, decode_responses=True))


@pytest.fixture()
def cache(directory: RemoteDirectory) -> ProfileCache:
    return ProfileCache(directory, refresh_interval_s=60.0, max_attempts=3, retry_delay_s=0.0)


@pytest.fixture()
def session(store: IdentityStore, directory: RemoteDirectory, cache: ProfileCache) -> PlayerSession:
    return PlayerSession(store=store, directory=directory, cache=cache, config=BootstrapConfig(sentinel_player_id=1))


@pytest.fixture()
def client(session: PlayerSession) -> Generator[Any, None, None]:
    """FastAPI TestClient with the test session installed as the process-wide session."""

    from fastapi.testclient import TestClient

    from puzzlehub.main import app
    from puzzlehub.runtime.singleton import init_session, reset_session_for_tests

    reset_session_for_tests()
    init_session(session=session)
    with TestClient(app) as c:
        yield c
    reset_session_for_tests()
