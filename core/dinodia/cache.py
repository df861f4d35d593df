"""
Device List Cache

Keeps the last synchronized device list per (user, mode). A background
refresh serves the cached list immediately and replaces it once a new sync
succeeds. Writes are serialized per key and a sync that started before a
newer one (or before the entry was cleared) never overwrites it.
"""

import asyncio
import itertools
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from .devices import DeviceSynchronizer
from .models import HaMode, UIDevice

logger = logging.getLogger(__name__)

CacheKey = tuple[int, HaMode]


@dataclass
class CacheEntry:
    devices: list[UIDevice]
    updated_at: float
    sequence: int


@dataclass
class _KeyState:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    generation: int = 0
    in_flight: int = 0


class SyncCache:
    """Per-user, per-mode device list cache."""

    def __init__(
        self,
        synchronizer: DeviceSynchronizer,
        max_age: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize cache.

        Args:
            synchronizer: Source of fresh device lists
            max_age: Seconds a cached list counts as fresh
            clock: Monotonic time source
        """
        self.synchronizer = synchronizer
        self.max_age = max_age
        self.clock = clock
        self._entries: dict[CacheKey, CacheEntry] = {}
        self._keys: dict[CacheKey, _KeyState] = {}
        self._sequence = itertools.count(1)
        self._background: set[asyncio.Task] = set()
        self.last_errors: dict[CacheKey, Exception] = {}

    def _state(self, key: CacheKey) -> _KeyState:
        if key not in self._keys:
            self._keys[key] = _KeyState()
        return self._keys[key]

    def _forget_if_idle(self, key: CacheKey, state: _KeyState) -> None:
        # A running sync still needs its generation to detect a clear
        if state.in_flight == 0 and key not in self._entries and self._keys.get(key) is state:
            del self._keys[key]

    def get(self, user_id: int, mode: HaMode, *, allow_stale: bool = False) -> CacheEntry | None:
        """Cached entry, or None if missing or older than max_age."""
        entry = self._entries.get((user_id, HaMode(mode)))
        if entry is None:
            return None
        if not allow_stale and self.clock() - entry.updated_at > self.max_age:
            return None
        return entry

    async def _synchronize(self, key: CacheKey) -> list[UIDevice]:
        state = self._state(key)
        sequence = next(self._sequence)
        generation = state.generation

        state.in_flight += 1
        try:
            devices = await self.synchronizer.list_devices(*key)

            async with state.lock:
                current = self._entries.get(key)
                if state.generation != generation:
                    logger.debug(f"Dropping sync result for {key}: cache cleared meanwhile")
                elif current is not None and current.sequence > sequence:
                    logger.debug(f"Dropping stale sync result for {key}")
                else:
                    self._entries[key] = CacheEntry(list(devices), self.clock(), sequence)
                    self.last_errors.pop(key, None)
        finally:
            state.in_flight -= 1
            self._forget_if_idle(key, state)
        return devices

    async def _background_refresh(self, key: CacheKey) -> None:
        try:
            await self._synchronize(key)
        except Exception as e:
            self.last_errors[key] = e
            logger.warning(f"Background refresh failed for user {key[0]} ({key[1].value}): {e}")

    async def refresh(self, user_id: int, mode: HaMode, background: bool = False) -> list[UIDevice]:
        """Device list for a user and mode.

        With background=True and a cached list present, the cached list is
        returned at once while a sync runs in the background. Otherwise the
        caller waits for a fresh sync and its errors propagate.
        """
        key = (user_id, HaMode(mode))
        cached = self._entries.get(key)
        if background and cached is not None:
            task = asyncio.create_task(self._background_refresh(key))
            self._background.add(task)
            task.add_done_callback(self._background.discard)
            return list(cached.devices)
        return list(await self._synchronize(key))

    async def list_devices(self, user_id: int, mode: HaMode) -> list[UIDevice]:
        """Fresh cached list if available, else a stale-while-revalidate refresh."""
        entry = self.get(user_id, mode)
        if entry is not None:
            return list(entry.devices)
        return await self.refresh(user_id, mode, background=True)

    async def wait_background(self) -> None:
        """Wait for running background refreshes."""
        if self._background:
            await asyncio.gather(*list(self._background))

    def clear_cache(self, user_id: int, mode: HaMode) -> None:
        key = (user_id, HaMode(mode))
        self._entries.pop(key, None)
        self.last_errors.pop(key, None)
        state = self._keys.get(key)
        if state is not None:
            state.generation += 1
            self._forget_if_idle(key, state)

    def clear_all(self, user_id: int) -> None:
        """Drop every mode's entry for a user (logout, user switch, mode switch)."""
        for mode in HaMode:
            self.clear_cache(user_id, mode)
