# src/secrets/secret_factory.py — v1
"""Factory for secret store instantiation."""

from __future__ import annotations

from conveyor.config.settings import Settings
from conveyor.secrets.base_secret_store import BaseSecretStore


def create_secret_store(settings: Settings | None = None) -> BaseSecretStore:
    """Instantiate the configured secret backend.

    The memory backend starts empty; it is meant to be replaced by a
    populated MemorySecretStore when the engine is embedded.
    """
    backend = "dotenv" if settings is None else settings.secrets_backend

    if backend == "memory":
        from conveyor.secrets.memory_store import MemorySecretStore
        return MemorySecretStore()

    if backend == "dotenv":
        from conveyor.secrets.dotenv_store import DotenvSecretStore
        secrets_dir = "~/.conveyor/secrets" if settings is None else settings.secrets_dir
        return DotenvSecretStore(secrets_dir=secrets_dir)

    raise ValueError(f"Unsupported secrets backend: {backend!r}")
