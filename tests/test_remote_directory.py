from __future__ import annotations

import random
import re

import httpx
import pytest

from puzzlehub.core.errors import NotFoundError, RemoteError
from puzzlehub.core.remote_directory import RemoteDirectory, generate_username


def test_generate_username_uses_prefix_and_bounded_suffix() -> None:
    rng = random.Random(0)
    for _ in range(200):
        name = generate_username("Player", rng=rng)
        m = re.fullmatch(r"Player(\d+)", name)
        assert m is not None
        assert 0 <= int(m.group(1)) < 10_000


@pytest.mark.asyncio
async def test_create_profile_inserts_unlinked_row(directory: RemoteDirectory, players_table) -> None:
    profile = await directory.create_profile("Player")

    assert players_table.create_calls == 1
    assert profile.id == 1000
    assert re.fullmatch(r"Player\d{1,4}", profile.username)
    assert profile.account_ref is None
    assert players_table.rows[profile.id]["username"] == profile.username

    req = players_table.requests[-1]
    assert req.method == "POST"
    assert req.headers["Prefer"] == "return=representation"
    assert req.headers["apikey"] == "anon-test-key"
    assert req.headers["Authorization"] == "Bearer anon-test-key"


@pytest.mark.asyncio
async def test_fetch_profile_maps_user_id_to_account_ref(directory: RemoteDirectory, players_table) -> None:
    players_table.add(42, username="Player42", user_id="acct-1")

    profile = await directory.fetch_profile(42)

    assert profile.id == 42
    assert profile.account_ref == "acct-1"
    assert profile.is_linked is True
    assert players_table.requests[-1].url.params["id"] == "eq.42"


@pytest.mark.asyncio
async def test_fetch_missing_row_raises_not_found(directory: RemoteDirectory) -> None:
    with pytest.raises(NotFoundError) as exc:
        await directory.fetch_profile(404)
    assert exc.value.player_id == 404


@pytest.mark.asyncio
async def test_server_errors_and_transport_failures_are_remote_errors(directory: RemoteDirectory, players_table) -> None:
    players_table.add(42)
    players_table.fail_fetches = 1
    with pytest.raises(RemoteError) as exc:
        await directory.fetch_profile(42)
    assert not isinstance(exc.value, NotFoundError)

    players_table.fail_creates = True
    with pytest.raises(RemoteError):
        await directory.create_profile()

    players_table.unreachable = True
    with pytest.raises(RemoteError):
        await directory.fetch_profile(42)


@pytest.mark.asyncio
async def test_array_responses_are_accepted() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.params["id"] == "eq.5":
            return httpx.Response(200, json=[{"id": 5, "username": "Player5", "user_id": None}])
        return httpx.Response(200, json=[])

    directory = RemoteDirectory.from_url("http://players.test", transport=httpx.MockTransport(handler))

    profile = await directory.fetch_profile(5)
    assert profile.username == "Player5"

    with pytest.raises(NotFoundError):
        await directory.fetch_profile(6)

    await directory.aclose()


@pytest.mark.asyncio
async def test_malformed_payload_is_remote_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"username": "no id here"})

    directory = RemoteDirectory.from_url("http://players.test", transport=httpx.MockTransport(handler))

    with pytest.raises(RemoteError):
        await directory.fetch_profile(1)
