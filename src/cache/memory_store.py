# src/cache/memory_store.py — v1
"""In-process cache store (CACHE_BACKEND=memory).

Entries live for the lifetime of the process. Useful for tests and for
single-run CLI invocations where nothing needs to survive.
"""

from __future__ import annotations

from collections.abc import Mapping

from conveyor.cache.base_cache_store import BaseCacheStore
from conveyor.cache.models import CacheEntry, CacheLookupResult


class MemoryCacheStore(BaseCacheStore):
    """Dict-backed cache store."""

    def __init__(self) -> None:
        self._entries: dict[str, CacheEntry] = {}

    async def store(self, key: str, artifacts: Mapping[str, bytes]) -> CacheEntry:
        entry = CacheEntry(key=key, artifacts=dict(artifacts))
        self._entries[key] = entry
        return entry

    async def restore(self, key: str) -> CacheLookupResult:
        entry = self._entries.get(key)
        if entry is None:
            return CacheLookupResult(key=key)
        # Copy so callers cannot mutate the stored artifact set
        return CacheLookupResult(key=key, entry=entry.model_copy(deep=True))

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def list_keys(self, prefix: str = "") -> list[str]:
        return sorted(k for k in self._entries if k.startswith(prefix))
