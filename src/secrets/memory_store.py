# src/secrets/memory_store.py — v1
"""In-process secret store, populated once by an operator or a test."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from types import MappingProxyType

from conveyor.secrets.base_secret_store import (
    BaseSecretStore,
    SecretBundle,
    SecretNotFoundError,
)


class MemorySecretStore(BaseSecretStore):
    """Read-only mapping of bundle name to SecretBundle."""

    def __init__(
        self,
        bundles: Iterable[SecretBundle] | Mapping[str, Mapping[str, str]] = (),
    ) -> None:
        if isinstance(bundles, Mapping):
            items = [
                SecretBundle(name=name, variables=dict(variables))
                for name, variables in bundles.items()
            ]
        else:
            items = list(bundles)
        self._bundles = MappingProxyType({b.name: b for b in items})

    async def resolve(self, name: str) -> SecretBundle:
        bundle = self._bundles.get(name)
        if bundle is None:
            raise SecretNotFoundError(name)
        return bundle

    async def list_bundles(self) -> list[str]:
        return sorted(self._bundles)
