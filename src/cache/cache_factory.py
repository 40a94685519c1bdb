# src/cache/cache_factory.py — v3
"""Factory for cache store instantiation."""

from __future__ import annotations

from conveyor.cache.base_cache_store import BaseCacheStore
from conveyor.config.settings import Settings


def create_cache_store(settings: Settings | None = None) -> BaseCacheStore:
    """Instantiate the configured cache backend.

    Args:
        settings: Application settings. Defaults to the JSON backend.

    Returns:
        Configured BaseCacheStore implementation.
    """
    backend = "json" if settings is None else settings.cache_backend
    cache_root = "~/.conveyor/cache" if settings is None else str(settings.cache_root)

    if backend == "memory":
        from conveyor.cache.memory_store import MemoryCacheStore
        return MemoryCacheStore()

    if backend == "json":
        from conveyor.cache.json_store import JsonCacheStore
        return JsonCacheStore(cache_root=cache_root)

    if backend == "sqlite":
        from conveyor.cache.sqlite_store import SqliteCacheStore
        return SqliteCacheStore(db_path=f"{cache_root}/conveyor_cache.db")

    if backend == "redis":
        from conveyor.cache.redis_store import RedisCacheStore
        if settings is None or not settings.cache_redis_url:
            raise ValueError(
                "CONVEYOR_CACHE_REDIS_URL must be set when CONVEYOR_CACHE_BACKEND=redis"
            )
        return RedisCacheStore(redis_url=settings.cache_redis_url)

    raise ValueError(f"Unsupported cache backend: {backend!r}")
