from __future__ import annotations

from puzzlehub.player_session import PlayerSession


_SESSION: PlayerSession | None = None


def init_session(*, session: PlayerSession | None = None) -> PlayerSession:
    """Install the process-wide player session.

    Safe to call multiple times; subsequent calls return the already installed instance.
    When `session` is omitted one is built from environment settings.
    """

    global _SESSION
    if _SESSION is None:
        if session is None:
            from puzzlehub.runtime.startup import build_session
            from puzzlehub.settings import settings_from_env

            session = build_session(settings_from_env())
        _SESSION = session
    return _SESSION


def reset_session_for_tests() -> None:
    """Drop the installed session so tests can install their own."""

    global _SESSION
    _SESSION = None


def get_session() -> PlayerSession:
    if _SESSION is None:
        raise RuntimeError("Player session not initialized. Call init_session() at startup.")
    return _SESSION
