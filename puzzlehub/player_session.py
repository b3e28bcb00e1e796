from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass

from puzzlehub.api.models import BootstrapState, PlayerSnapshot, Profile
from puzzlehub.core.errors import IdentityError, RemoteError, StorageError
from puzzlehub.core.identity_store import IdentityStore
from puzzlehub.core.profile_cache import CachedProfileEntry, ProfileCache
from puzzlehub.core.remote_directory import RemoteDirectory
from puzzlehub.fsm import BootstrapFSM


logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class BootstrapConfig:
    # Session-only identity used when local persistence is unusable. Never written to the store.
    sentinel_player_id: int = 1
    username_prefix: str = "Player"


SessionListener = Callable[[], None]


class PlayerSession:
    """Owns this installation's player identity and its reconciliation with the remote directory.

    Lifecycle (see BootstrapFSM):
      - read the persisted id; create a remote player when there is none (persisting the new id
        before becoming ready), otherwise load the existing player through the profile cache.
      - any storage failure, or a failed create, degrades to the configured sentinel identity.
      - once ready, screens can force a refetch or override the identity (login hand-off).

    `has_account` tracks `profile.account_ref is not None` for the current identity, updated only
    by successful fetches so a failed refresh keeps the last known value.
    """

    def __init__(
        self,
        *,
        store: IdentityStore,
        directory: RemoteDirectory,
        cache: ProfileCache,
        config: BootstrapConfig | None = None,
    ) -> None:
        self.store = store
        self.directory = directory
        self.cache = cache
        self.config = config or BootstrapConfig()
        self.fsm = BootstrapFSM()

        self.player_id: int | None = None
        self.has_account = False
        self.bootstrap_error: IdentityError | None = None

        self._bootstrap_task: asyncio.Task[None] | None = None
        self._listeners: list[SessionListener] = []
        cache.subscribe(self._on_entry)

    # ---- read side ----

    @property
    def state(self) -> BootstrapState:
        return self.fsm.phase

    @property
    def degraded(self) -> bool:
        return self.state == BootstrapState.degraded

    @property
    def player(self) -> Profile | None:
        entry = self._current_entry()
        return entry.profile if entry else None

    @property
    def player_loading(self) -> bool:
        if self.state in (BootstrapState.loading_local, BootstrapState.creating_remote):
            return True
        entry = self._current_entry()
        return bool(entry and entry.loading)

    @property
    def player_error(self) -> RemoteError | None:
        entry = self._current_entry()
        return entry.error if entry else None

    def snapshot(self) -> PlayerSnapshot:
        # Reading goes through cache.get() so a stale profile is revalidated in the background.
        if self.player_id is not None:
            self.cache.get(self.player_id)
        err = self.player_error
        return PlayerSnapshot(
            state=self.state,
            player_id=self.player_id,
            player=self.player,
            player_loading=self.player_loading,
            player_error=str(err) if err else None,
            bootstrap_error=str(self.bootstrap_error) if self.bootstrap_error else None,
            has_account=self.has_account,
            degraded=self.degraded,
            refresh_active=self.cache.active,
        )

    def subscribe(self, listener: SessionListener) -> None:
        self._listeners.append(listener)

    # ---- bootstrap ----

    async def bootstrap(self) -> PlayerSnapshot:
        """Run the bootstrap sequence once; repeated or concurrent calls share the same run."""

        if self._bootstrap_task is None:
            if self.state != BootstrapState.uninitialized:
                return self.snapshot()
            self._bootstrap_task = asyncio.create_task(self._run_bootstrap(), name="player-bootstrap")
        await asyncio.shield(self._bootstrap_task)
        return self.snapshot()

    async def _run_bootstrap(self) -> None:
        self._transition("begin")

        try:
            saved_id = await self.store.load_player_id()
        except StorageError as e:
            self._degrade(e)
            return

        if saved_id is None:
            self._transition("identity_missing")
            await self._create_player()
        else:
            self._transition("identity_found")
            await self._load_player(saved_id)

    async def _create_player(self) -> None:
        try:
            profile = await self.directory.create_profile(self.config.username_prefix)
        except RemoteError as e:
            self._degrade(e)
            return

        try:
            await self.store.save_player_id(profile.id)
        except StorageError as e:
            self._degrade(e)
            return

        self.player_id = profile.id
        self.cache.watch(profile.id)
        self.cache.prime(profile)
        # New rows start unlinked.
        self.has_account = False
        self._transition("created")

    async def _load_player(self, player_id: int) -> None:
        self.player_id = player_id
        self.cache.watch(player_id)
        self._notify()

        # Whatever the fetch produces (fresh, stale, errored, not found) is accepted as ready.
        # A missing remote row does not trigger re-creation.
        await self.cache.fetch(player_id)

        if self.state == BootstrapState.loading_remote and self.player_id == player_id:
            self._transition("loaded")

    def _degrade(self, error: IdentityError) -> None:
        sentinel = self.config.sentinel_player_id
        logger.error("Player bootstrap degraded to sentinel id %s: %s", sentinel, error)
        if self.player_id is not None:
            self.cache.unwatch(self.player_id)
        self.bootstrap_error = error
        self.player_id = sentinel
        self.cache.watch(sentinel)
        self._transition("fail")
        self.cache.get(sentinel)

    # ---- ready-state operations ----

    async def refetch(self) -> CachedProfileEntry | None:
        """Force an immediate profile fetch for the current identity."""

        if self.player_id is None:
            return None
        return await self.cache.fetch(self.player_id)

    async def override_player_id(self, player_id: int, *, persist: bool = False) -> PlayerSnapshot:
        """Switch to another identity (e.g. one supplied by a login flow)."""

        if self.state != BootstrapState.ready:
            raise ValueError(f"Cannot override player id while {self.state.value}")

        previous = self.player_id
        self._transition("override")
        if previous is not None and previous != player_id:
            self.cache.unwatch(previous)

        if persist:
            try:
                await self.store.save_player_id(player_id)
            except StorageError as e:
                # The override still applies to this session.
                logger.warning("Could not persist overridden player id %s: %s", player_id, e)
                self.bootstrap_error = e

        await self._load_player(player_id)
        return self.snapshot()

    async def sign_out(self) -> PlayerSnapshot:
        """Forget the persisted identity and return to `uninitialized`."""

        if self.state not in (BootstrapState.ready, BootstrapState.degraded):
            raise ValueError(f"Cannot sign out while {self.state.value}")

        if not self.degraded:
            try:
                await self.store.forget_player_id()
            except StorageError as e:
                logger.warning("Could not remove persisted player id: %s", e)

        await self.cache.clear()
        self.player_id = None
        self.has_account = False
        self.bootstrap_error = None
        self._bootstrap_task = None
        self._transition("reset")
        return self.snapshot()

    async def aclose(self) -> None:
        if self._bootstrap_task is not None and not self._bootstrap_task.done():
            self._bootstrap_task.cancel()
            try:
                await self._bootstrap_task
            except asyncio.CancelledError:
                pass
        await self.cache.close()
        await self.directory.aclose()
        await self.store.aclose()

    # ---- internals ----

    def _current_entry(self) -> CachedProfileEntry | None:
        if self.player_id is None:
            return None
        return self.cache.peek(self.player_id)

    def _on_entry(self, entry: CachedProfileEntry) -> None:
        if entry.player_id != self.player_id:
            return
        if entry.succeeded and entry.profile is not None:
            self.has_account = entry.profile.is_linked
        self._notify()

    def _transition(self, event: str) -> None:
        before = self.state
        self.fsm.send(event)
        logger.info("Player session %s -> %s (player_id=%s)", before.value, self.state.value, self.player_id)
        self._notify()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener()
