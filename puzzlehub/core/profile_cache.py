from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from puzzlehub.api.models import Profile
from puzzlehub.core.errors import NotFoundError, RemoteError


logger = logging.getLogger(__name__)

MAX_RETRY_DELAY_S = 30.0


class ProfileSource(Protocol):
    async def fetch_profile(self, player_id: int) -> Profile:  # pragma: no cover
        ...


@dataclass(slots=True)
class CachedProfileEntry:
    """Last known state of one player's profile.

    Stale-while-revalidate: `profile` is only replaced by a successful fetch, so a
    failed refresh keeps serving the previous value alongside `error`.
    """

    player_id: int
    profile: Profile | None = None
    loading: bool = False
    error: RemoteError | None = None
    # Clock readings (see ProfileCache.clock).
    fetched_at: float | None = None
    updated_at: float | None = None

    @property
    def succeeded(self) -> bool:
        return self.profile is not None and self.error is None


EntryListener = Callable[[CachedProfileEntry], None]


class ProfileCache:
    """Per-player profile cache on top of the remote directory.

    - At most one fetch in flight per player id; concurrent callers share it.
    - `RemoteError` is retried up to `max_attempts` per cycle; `NotFoundError` is final.
    - Watched ids are refreshed every `refresh_interval_s` while `activate()`d.
    """

    def __init__(
        self,
        directory: ProfileSource,
        *,
        refresh_interval_s: float = 60.0,
        max_attempts: int = 3,
        retry_delay_s: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._directory = directory
        self.refresh_interval_s = refresh_interval_s
        self.max_attempts = max_attempts
        self.retry_delay_s = retry_delay_s
        self.clock = clock

        self._entries: dict[int, CachedProfileEntry] = {}
        self._inflight: dict[int, asyncio.Task[CachedProfileEntry]] = {}
        self._watched: set[int] = set()
        self._listeners: list[EntryListener] = []
        self._refresh_task: asyncio.Task[None] | None = None
        self._closed = False

    # ---- reads ----

    def peek(self, player_id: int) -> CachedProfileEntry | None:
        return self._entries.get(player_id)

    def get(self, player_id: int) -> CachedProfileEntry:
        """Return the last known entry, kicking off a background fetch when it is due."""

        entry = self._entry(player_id)
        if not self._closed and player_id not in self._inflight and self._is_due(entry):
            self._start_fetch(player_id)
        return entry

    def is_fetching(self, player_id: int) -> bool:
        return player_id in self._inflight

    async def fetch(self, player_id: int) -> CachedProfileEntry:
        """Fetch now regardless of cadence, joining any fetch already in flight."""

        if self._closed:
            return self._entry(player_id)

        task = self._inflight.get(player_id) or self._start_fetch(player_id)
        try:
            # Shielded so one cancelled caller doesn't cancel the fetch for everyone else.
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if not task.cancelled() or (current is not None and current.cancelling()):
                raise
            # The fetch itself was cancelled by clear()/close(); report what is known.
            return self._entries.get(player_id) or CachedProfileEntry(player_id=player_id)

    def prime(self, profile: Profile) -> CachedProfileEntry:
        entry = self._entry(profile.id)
        now = self.clock()
        entry.profile = profile
        entry.error = None
        entry.fetched_at = now
        entry.updated_at = now
        self._notify(entry)
        return entry

    # ---- observation ----

    def subscribe(self, listener: EntryListener) -> None:
        self._listeners.append(listener)

    def watch(self, player_id: int) -> None:
        self._watched.add(player_id)

    def unwatch(self, player_id: int) -> None:
        self._watched.discard(player_id)

    @property
    def watched(self) -> frozenset[int]:
        return frozenset(self._watched)

    # ---- refresh lifecycle ----

    @property
    def active(self) -> bool:
        return self._refresh_task is not None and not self._refresh_task.done()

    def activate(self) -> None:
        """Start the periodic refresh timer. The first tick is one full interval away."""

        if self._closed or self.active:
            return
        self._refresh_task = asyncio.create_task(self._refresh_loop(), name="profile-cache-refresh")
        logger.debug("Profile refresh activated (every %.1fs)", self.refresh_interval_s)

    async def deactivate(self) -> None:
        task, self._refresh_task = self._refresh_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.debug("Profile refresh deactivated")

    async def clear(self) -> None:
        """Forget every entry and cancel outstanding fetches. Watches are dropped too."""

        await self._cancel_inflight()
        self._entries.clear()
        self._watched.clear()

    async def close(self) -> None:
        """Tear down: stop the timer, cancel fetches, and start no new ones afterwards."""

        self._closed = True
        await self.deactivate()
        await self._cancel_inflight()

    # ---- internals ----

    def _entry(self, player_id: int) -> CachedProfileEntry:
        entry = self._entries.get(player_id)
        if entry is None:
            entry = CachedProfileEntry(player_id=player_id)
            self._entries[player_id] = entry
        return entry

    def _is_due(self, entry: CachedProfileEntry) -> bool:
        if entry.updated_at is None:
            return True
        return self.clock() - entry.updated_at >= self.refresh_interval_s

    def _start_fetch(self, player_id: int) -> asyncio.Task[CachedProfileEntry]:
        entry = self._entry(player_id)
        entry.loading = True
        task = asyncio.create_task(self._run_fetch(entry), name=f"profile-fetch-{player_id}")
        self._inflight[player_id] = task
        return task

    async def _run_fetch(self, entry: CachedProfileEntry) -> CachedProfileEntry:
        pid = entry.player_id
        error: RemoteError | None = None
        try:
            for attempt in range(1, self.max_attempts + 1):
                try:
                    logger.debug("Fetching player %s (attempt %d/%d)", pid, attempt, self.max_attempts)
                    profile = await self._directory.fetch_profile(pid)
                except NotFoundError as e:
                    logger.warning("Player %s not found in remote directory", pid)
                    error = e
                    break
                except RemoteError as e:
                    error = e
                    logger.warning("Fetch of player %s failed (attempt %d/%d): %s", pid, attempt, self.max_attempts, e)
                    if attempt < self.max_attempts:
                        await asyncio.sleep(self._retry_delay(attempt))
                else:
                    entry.profile = profile
                    entry.error = None
                    entry.fetched_at = self.clock()
                    error = None
                    break

            if error is not None:
                entry.error = error
            entry.updated_at = self.clock()
        finally:
            entry.loading = False
            if self._inflight.get(pid) is asyncio.current_task():
                del self._inflight[pid]

        self._notify(entry)
        return entry

    def _retry_delay(self, attempt: int) -> float:
        return min(self.retry_delay_s * 2 ** (attempt - 1), MAX_RETRY_DELAY_S)

    def _notify(self, entry: CachedProfileEntry) -> None:
        for listener in list(self._listeners):
            listener(entry)

    async def _refresh_loop(self) -> None:
        while True:
            await asyncio.sleep(self.refresh_interval_s)
            for pid in sorted(self._watched):
                if pid not in self._inflight:
                    self._start_fetch(pid)

    async def _cancel_inflight(self) -> None:
        tasks = list(self._inflight.values())
        for pid in self._inflight:
            self._entry(pid).loading = False
        self._inflight.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
