"""
ZimConnect — Candidate Set view

A cursor over the candidate list cached under one discover-profiles key.
Removal by id is idempotent and never triggers a refetch; the list is
written back through the query cache so it obeys the same last-write-wins
ordering as realtime invalidations.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from zimconnect.realtime.cache import CacheStatus, QueryCache
from zimconnect.schemas.profile import CandidateProfile


class CandidateStatus(str, Enum):
    LOADING = "loading"
    READY = "ready"
    EMPTY = "empty"
    ERROR = "error"


def _candidate_id(item: Any) -> str:
    return item.id if isinstance(item, CandidateProfile) else item["id"]


def without(items: list | None, candidate_id: str) -> list | None:
    """``items`` minus ``candidate_id``; unchanged (same object) when absent."""
    if items is None:
        return None
    if not any(_candidate_id(i) == candidate_id for i in items):
        return items
    return [i for i in items if _candidate_id(i) != candidate_id]


class CandidateSet:
    """Single-candidate cursor over a cached candidate list."""

    def __init__(self, cache: QueryCache, key: tuple | None = None) -> None:
        self.cache = cache
        self.key = key
        self.index = 0

    def bind(self, key: tuple | None) -> None:
        """Point the view at another cached list (new filters); resets the cursor."""
        if key != self.key:
            self.key = key
            self.index = 0

    @property
    def items(self) -> list[CandidateProfile]:
        if self.key is None:
            return []
        return list(self.cache.get_data(self.key, []) or [])

    @property
    def status(self) -> CandidateStatus:
        if self.key is None:
            return CandidateStatus.LOADING
        entry = self.cache.entry(self.key)
        if entry is None or (entry.status is CacheStatus.LOADING and not entry.has_data):
            return CandidateStatus.LOADING
        if entry.status is CacheStatus.ERROR:
            return CandidateStatus.ERROR
        return CandidateStatus.READY if entry.data else CandidateStatus.EMPTY

    @property
    def current(self) -> CandidateProfile | None:
        items = self.items
        self._clamp(len(items))
        return items[self.index] if items else None

    def ids(self) -> list[str]:
        return [_candidate_id(i) for i in self.items]

    def contains(self, candidate_id: str) -> bool:
        return candidate_id in self.ids()

    def __len__(self) -> int:
        return len(self.items)

    def remove(self, candidate_id: str) -> bool:
        """Remove ``candidate_id``; a second call for the same id is a no-op.

        The cursor keeps pointing at the candidate that followed the removed
        one (or at the new last candidate when the tail was removed).
        """
        ids = self.ids()
        if candidate_id not in ids:
            return False
        position = ids.index(candidate_id)
        self.cache.update(self.key, lambda items: without(items, candidate_id))
        if position < self.index:
            self.index -= 1
        self._clamp(len(ids) - 1)
        return True

    def advance(self) -> CandidateProfile | None:
        """Skip to the next candidate without acting on the current one."""
        if self.index < len(self.items) - 1:
            self.index += 1
        return self.current

    def reset(self) -> None:
        self.index = 0

    def _clamp(self, length: int) -> None:
        if length == 0:
            self.index = 0
        elif self.index >= length:
            self.index = length - 1
