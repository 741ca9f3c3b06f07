"""
ZimConnect — Client query cache

Every cached view (candidate set, match list, message list, counters) lives
under a tuple key and moves through a small state machine::

    LOADING ──fetch ok──▶ READY(data) ──invalidate──▶ STALE(data, pending)
       │                     ▲                              │
       └──fetch failed──▶ ERROR          refetch ok ────────┘

Writes are applied in arrival order, whatever produced them: an optimistic
local edit, a realtime patch and a refetch result all go through
``_write`` and the latest one wins.  Invalidating a key whose refetch is
already in flight only sets ``pending_refetch``; exactly one more refetch
runs when the current one finishes.
"""

from __future__ import annotations

import asyncio
import itertools
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

import structlog

logger = structlog.get_logger("zimconnect.realtime.cache")

Key = tuple
Fetcher = Callable[[], Awaitable[Any]]
Listener = Callable[[Key, Any], None]


class CacheStatus(str, Enum):
    LOADING = "loading"
    READY = "ready"
    STALE = "stale"
    ERROR = "error"


@dataclass
class CacheEntry:
    key: Key
    status: CacheStatus = CacheStatus.LOADING
    data: Any = None
    version: int = 0
    pending_refetch: bool = False
    error: Optional[BaseException] = None
    fetcher: Optional[Fetcher] = field(default=None, repr=False)

    @property
    def has_data(self) -> bool:
        return self.version > 0


def key_matches(key: Key, prefix: Key) -> bool:
    return key[: len(prefix)] == prefix


class QueryCache:
    """Keyed cache with invalidate-and-refetch semantics."""

    def __init__(self) -> None:
        self._entries: dict[Key, CacheEntry] = {}
        self._inflight: dict[Key, asyncio.Task] = {}
        self._listeners: list[tuple[Key, Listener]] = []
        self._clock = itertools.count(1)

    # ── Reads ─────────────────────────────────────────────────────────────

    def entry(self, key: Key) -> CacheEntry | None:
        return self._entries.get(key)

    def get_data(self, key: Key, default: Any = None) -> Any:
        entry = self._entries.get(key)
        if entry is None or not entry.has_data:
            return default
        return entry.data

    def status(self, key: Key) -> CacheStatus | None:
        entry = self._entries.get(key)
        return entry.status if entry is not None else None

    def keys(self, prefix: Key = ()) -> list[Key]:
        return [k for k in self._entries if key_matches(k, prefix)]

    # ── Fetching ──────────────────────────────────────────────────────────

    async def fetch(self, key: Key, fetcher: Fetcher, *, force: bool = False) -> Any:
        """Return cached data for ``key``, loading it with ``fetcher`` if needed.

        The fetcher is remembered so later invalidations can refetch the key.
        Errors propagate to the caller; the entry keeps its last good data.
        """
        entry = self._entries.setdefault(key, CacheEntry(key))
        entry.fetcher = fetcher

        inflight = self._inflight.get(key)
        if inflight is not None and not force:
            await asyncio.shield(inflight)
            if entry.status is CacheStatus.ERROR and entry.error is not None:
                raise entry.error
            return entry.data

        if entry.status is CacheStatus.READY and not force:
            return entry.data

        return await self._run_fetch(entry)

    async def _run_fetch(self, entry: CacheEntry) -> Any:
        if not entry.has_data:
            entry.status = CacheStatus.LOADING
        try:
            data = await entry.fetcher()
        except Exception as exc:
            entry.error = exc
            entry.status = CacheStatus.STALE if entry.has_data else CacheStatus.ERROR
            raise
        self._write(entry, data)
        return data

    # ── Writes ────────────────────────────────────────────────────────────

    def set_data(self, key: Key, data: Any) -> None:
        entry = self._entries.setdefault(key, CacheEntry(key))
        self._write(entry, data)

    def update(self, key: Key, updater: Callable[[Any], Any]) -> bool:
        """Apply ``updater`` to the cached value; no-op for keys never loaded."""
        entry = self._entries.get(key)
        if entry is None or not entry.has_data:
            return False
        self._write(entry, updater(entry.data))
        return True

    def update_matching(self, prefix: Key, updater: Callable[[Any], Any]) -> int:
        count = 0
        for key in self.keys(prefix):
            if self.update(key, updater):
                count += 1
        return count

    def _write(self, entry: CacheEntry, data: Any) -> None:
        entry.data = data
        entry.version = next(self._clock)
        entry.error = None
        if entry.key not in self._inflight or not entry.pending_refetch:
            entry.status = CacheStatus.READY
        for prefix, listener in list(self._listeners):
            if key_matches(entry.key, prefix):
                try:
                    listener(entry.key, data)
                except Exception:
                    logger.exception("cache_listener_failed", key=entry.key)

    # ── Invalidation ──────────────────────────────────────────────────────

    def invalidate(self, *prefix: Any) -> int:
        """Mark every key under ``prefix`` stale and refetch the loaded ones."""
        count = 0
        for key, entry in list(self._entries.items()):
            if not key_matches(key, tuple(prefix)):
                continue
            count += 1
            if entry.status is not CacheStatus.LOADING:
                entry.status = CacheStatus.STALE
            if entry.fetcher is None:
                continue
            if key in self._inflight:
                entry.pending_refetch = True
                continue
            self._schedule(entry)
        if count:
            logger.debug("cache_invalidated", prefix=prefix, keys=count)
        return count

    def _schedule(self, entry: CacheEntry) -> None:
        task = asyncio.get_running_loop().create_task(
            self._refetch(entry), name=f"refetch:{entry.key[0]}"
        )
        self._inflight[entry.key] = task

    async def _refetch(self, entry: CacheEntry) -> None:
        try:
            while True:
                entry.pending_refetch = False
                try:
                    await self._run_fetch(entry)
                except Exception as exc:
                    logger.warning(
                        "cache_refetch_failed",
                        key=entry.key,
                        error=str(exc),
                    )
                if not entry.pending_refetch:
                    break
        finally:
            self._inflight.pop(entry.key, None)
            if entry.status is CacheStatus.STALE and entry.error is None:
                entry.status = CacheStatus.READY

    async def settle(self) -> None:
        """Wait for all in-flight refetches (including chained ones)."""
        while self._inflight:
            await asyncio.gather(*list(self._inflight.values()), return_exceptions=True)

    # ── Listeners & lifecycle ─────────────────────────────────────────────

    def listen(self, prefix: Key, listener: Listener) -> Callable[[], None]:
        item = (tuple(prefix), listener)
        self._listeners.append(item)

        def _remove() -> None:
            if item in self._listeners:
                self._listeners.remove(item)

        return _remove

    def remove(self, *prefix: Any) -> None:
        for key in self.keys(tuple(prefix)):
            task = self._inflight.pop(key, None)
            if task is not None:
                task.cancel()
            self._entries.pop(key, None)

    def clear(self) -> None:
        self.remove()
