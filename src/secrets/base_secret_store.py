# src/secrets/base_secret_store.py — v1
"""Abstract secret store interface and the SecretBundle model.

Bundles are created out-of-band by an operator and are read-only while
pipelines run. Resolution has no side effects, so concurrent pipelines
may resolve the same bundle name at once.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from pydantic import BaseModel, ConfigDict, Field


class SecretNotFoundError(LookupError):
    """Raised when a job references a bundle that is not registered."""

    def __init__(self, name: str) -> None:
        super().__init__(f"secret bundle '{name}' not found")
        self.name = name


class SecretBundle(BaseModel):
    """Named, immutable set of environment variables."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    variables: dict[str, str] = Field(default_factory=dict)

    def __repr__(self) -> str:
        # Never render values
        return f"SecretBundle(name={self.name!r}, variables={sorted(self.variables)!r})"

    __str__ = __repr__

    @property
    def secret_values(self) -> list[str]:
        """Secret values, used to build the output redactor."""
        return list(self.variables.values())


class BaseSecretStore(ABC):
    """Unified interface for secret bundle backends."""

    @abstractmethod
    async def resolve(self, name: str) -> SecretBundle:
        """Return the bundle registered under name.

        Raises:
            SecretNotFoundError: If no such bundle exists.
        """

    @abstractmethod
    async def list_bundles(self) -> list[str]:
        """List registered bundle names, sorted."""
