# src/cache/redis_store.py — v3
"""Redis-based cache store (CACHE_BACKEND=redis).

Requires 'redis' package: pip install redis.
Suitable for runners spread over several hosts. Each entry is a hash of
path -> bytes plus a metadata string, kept under separate prefixes so no
user key can land on another entry's data. A set indexes every stored key.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime

from conveyor.cache.base_cache_store import BaseCacheStore
from conveyor.cache.models import CacheEntry, CacheLookupResult

logger = logging.getLogger(__name__)

_FILES_PREFIX = "conveyor:cache:files:"
_META_PREFIX = "conveyor:cache:meta:"
_INDEX_KEY = "conveyor:cache:index"


class RedisCacheStore(BaseCacheStore):
    """Redis-backed cache store for distributed runners."""

    def __init__(self, redis_url: str, client: object | None = None) -> None:
        if client is None:
            try:
                import redis
            except ImportError as e:
                raise ImportError(
                    "redis package required: pip install redis"
                ) from e
            client = redis.Redis.from_url(redis_url)
        self._client = client

    async def store(self, key: str, artifacts: Mapping[str, bytes]) -> CacheEntry:
        """Store an entry, replacing the previous artifact hash atomically."""
        entry = CacheEntry(key=key, artifacts=dict(artifacts))
        files_key = _FILES_PREFIX + key
        pipe = self._client.pipeline(transaction=True)
        pipe.delete(files_key)
        if entry.artifacts:
            pipe.hset(files_key, mapping=entry.artifacts)
        pipe.set(_META_PREFIX + key, entry.created_at.isoformat())
        pipe.sadd(_INDEX_KEY, key)
        pipe.execute()
        return entry

    async def restore(self, key: str) -> CacheLookupResult:
        pipe = self._client.pipeline(transaction=True)
        pipe.get(_META_PREFIX + key)
        pipe.hgetall(_FILES_PREFIX + key)
        created_at, raw = pipe.execute()
        if created_at is None:
            return CacheLookupResult(key=key)
        artifacts = {_decode(path): bytes(data) for path, data in raw.items()}
        return CacheLookupResult(
            key=key,
            entry=CacheEntry(
                key=key,
                artifacts=artifacts,
                created_at=datetime.fromisoformat(_decode(created_at)),
            ),
        )

    async def delete(self, key: str) -> None:
        pipe = self._client.pipeline(transaction=True)
        pipe.delete(_FILES_PREFIX + key, _META_PREFIX + key)
        pipe.srem(_INDEX_KEY, key)
        pipe.execute()

    async def list_keys(self, prefix: str = "") -> list[str]:
        keys = (_decode(k) for k in self._client.smembers(_INDEX_KEY))
        return sorted(k for k in keys if k.startswith(prefix))

    def close(self) -> None:
        """Close the Redis connection."""
        self._client.close()


def _decode(value: bytes | str) -> str:
    return value.decode("utf-8") if isinstance(value, bytes) else value
