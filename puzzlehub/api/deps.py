from __future__ import annotations

from puzzlehub.player_session import PlayerSession
from puzzlehub.runtime.singleton import get_session as _installed_session


def get_session() -> PlayerSession:
    return _installed_session()
