from __future__ import annotations

from enum import StrEnum
from typing import Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class Profile(BaseModel):
    """A row of the remote `players` table."""

    model_config = ConfigDict(coerce_numbers_to_str=True)

    id: int
    username: str

    # Reference to the linked auth account. Stored as `user_id` in the players table;
    # null means the device identity has not been upgraded to a full account.
    account_ref: str | None = Field(
        default=None,
        validation_alias=AliasChoices("user_id", "account_ref", "accountRef"),
    )

    profile_emoji: str | None = None

    @property
    def is_linked(self) -> bool:
        return self.account_ref is not None


class BootstrapState(StrEnum):
    uninitialized = "uninitialized"
    loading_local = "loading_local"
    creating_remote = "creating_remote"
    loading_remote = "loading_remote"
    ready = "ready"
    degraded = "degraded"


class PlayerSnapshot(BaseModel):
    state: BootstrapState
    player_id: int | None = None
    player: Profile | None = None
    player_loading: bool = False
    player_error: str | None = None
    bootstrap_error: str | None = None
    has_account: bool = False
    degraded: bool = False
    refresh_active: bool = False


class PlayerOverrideRequest(BaseModel):
    player_id: int = Field(..., ge=1)
    # Login flows persist the linked player's id so it survives restarts.
    persist: bool = False


class LifecycleRequest(BaseModel):
    state: Literal["active", "background"]
