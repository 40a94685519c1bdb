# src/cache/base_cache_store.py — v1
"""Abstract artifact cache interface.

Keys are opaque strings. Workflow isolation is a naming convention: a
caller embeds the workflow id in the key, and any caller that builds the
same literal key reads the same entry.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping

from conveyor.cache.models import CacheEntry, CacheLookupResult


class BaseCacheStore(ABC):
    """Unified interface for artifact cache backends."""

    @abstractmethod
    async def store(self, key: str, artifacts: Mapping[str, bytes]) -> CacheEntry:
        """Store artifacts under key, replacing any existing entry."""

    @abstractmethod
    async def restore(self, key: str) -> CacheLookupResult:
        """Return the entry for key, or a miss. Never raises for a missing key."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove key. Deleting a missing key is a no-op."""

    @abstractmethod
    async def list_keys(self, prefix: str = "") -> list[str]:
        """List stored keys starting with prefix, sorted."""

    def close(self) -> None:
        """Release backend resources."""
