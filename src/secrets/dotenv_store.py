# src/secrets/dotenv_store.py — v1
"""Directory of dotenv files, one bundle per file (SECRETS_BACKEND=dotenv).

    <secrets_dir>/registry-credentials.env
    <secrets_dir>/kube-config.env

Files are read on every resolve and never written, so an operator can
rotate a bundle between runs without restarting anything.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from dotenv import dotenv_values

from conveyor.secrets.base_secret_store import (
    BaseSecretStore,
    SecretBundle,
    SecretNotFoundError,
)

logger = logging.getLogger(__name__)

_SUFFIX = ".env"
_VALID_NAME = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")


class DotenvSecretStore(BaseSecretStore):
    """Resolves bundles from ``<name>.env`` files in a directory."""

    def __init__(self, secrets_dir: Path | str) -> None:
        self._root = Path(secrets_dir).expanduser()

    async def resolve(self, name: str) -> SecretBundle:
        if not _VALID_NAME.match(name):
            raise SecretNotFoundError(name)
        path = self._root / f"{name}{_SUFFIX}"
        if not path.is_file():
            raise SecretNotFoundError(name)
        # interpolate=False: values are taken literally, never expanded
        # from the host environment
        raw = dotenv_values(path, interpolate=False, encoding="utf-8")
        variables = {k: "" if v is None else v for k, v in raw.items()}
        logger.debug("Resolved secret bundle %s (%d variables)", name, len(variables))
        return SecretBundle(name=name, variables=variables)

    async def list_bundles(self) -> list[str]:
        if not self._root.is_dir():
            return []
        return sorted(p.stem for p in self._root.glob(f"*{_SUFFIX}") if p.is_file())
