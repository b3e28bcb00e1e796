from __future__ import annotations


class IdentityError(Exception):
    """Base class for failures in the player identity core."""


class StorageError(IdentityError):
    """Local identity persistence is unavailable or holds an unusable value."""


class RemoteError(IdentityError):
    """Transient failure talking to the remote players directory."""


class NotFoundError(RemoteError):
    """The remote directory has no player row for the requested id."""

    def __init__(self, player_id: int) -> None:
        super().__init__(f"Player {player_id} not found")
        self.player_id = player_id
