# src/cache/json_store.py — v2
"""Filesystem cache store (default CACHE_BACKEND=json).

Each key gets a directory under CACHE_ROOT named by the SHA-256 of the
key, holding a JSON manifest and the artifact files themselves:

    <root>/<sha256(key)>/manifest.json
    <root>/<sha256(key)>/files/<relative path>

Writes go to a staging directory first and are swapped in, so a reader
sees either the previous entry, the new one, or a miss.
"""

from __future__ import annotations

import hashlib
import logging
import os
import shutil
import tempfile
import uuid
from collections.abc import Mapping
from datetime import datetime
from pathlib import Path

from pydantic import BaseModel

from conveyor.cache.base_cache_store import BaseCacheStore
from conveyor.cache.models import CacheEntry, CacheLookupResult

logger = logging.getLogger(__name__)

_MANIFEST = "manifest.json"
_FILES = "files"
_STAGING_PREFIX = ".staging-"
_TRASH_MARKER = ".old-"


class _Manifest(BaseModel):
    key: str
    created_at: datetime
    files: list[str]


class JsonCacheStore(BaseCacheStore):
    """File-based cache store using a JSON manifest per entry."""

    def __init__(self, cache_root: Path | str) -> None:
        self._root = Path(cache_root).expanduser()
        self._root.mkdir(parents=True, exist_ok=True)

    async def store(self, key: str, artifacts: Mapping[str, bytes]) -> CacheEntry:
        """Store artifacts under key (overwrite)."""
        entry = CacheEntry(key=key, artifacts=dict(artifacts))
        staging = Path(tempfile.mkdtemp(prefix=_STAGING_PREFIX, dir=self._root))
        try:
            for rel_path, data in entry.artifacts.items():
                path = staging / _FILES / rel_path
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_bytes(data)
            manifest = _Manifest(
                key=key, created_at=entry.created_at, files=sorted(entry.artifacts),
            )
            (staging / _MANIFEST).write_text(
                manifest.model_dump_json(indent=2), encoding="utf-8",
            )
            self._swap_in(staging, self._entry_dir(key))
        except BaseException:
            shutil.rmtree(staging, ignore_errors=True)
            raise
        return entry

    async def restore(self, key: str) -> CacheLookupResult:
        """Read the entry for key; a missing or unreadable entry is a miss."""
        entry_dir = self._entry_dir(key)
        manifest_path = entry_dir / _MANIFEST
        if not manifest_path.exists():
            return CacheLookupResult(key=key)
        try:
            manifest = _Manifest.model_validate_json(
                manifest_path.read_text(encoding="utf-8")
            )
            artifacts = {
                rel_path: (entry_dir / _FILES / rel_path).read_bytes()
                for rel_path in manifest.files
            }
        except (OSError, ValueError) as e:
            logger.warning("Failed to read cache entry %s: %s", key, e)
            return CacheLookupResult(key=key)
        return CacheLookupResult(
            key=key,
            entry=CacheEntry(key=key, artifacts=artifacts, created_at=manifest.created_at),
        )

    async def delete(self, key: str) -> None:
        """Remove the entry directory if present."""
        entry_dir = self._entry_dir(key)
        if entry_dir.exists():
            trash = self._trash_path(entry_dir)
            try:
                os.replace(entry_dir, trash)
            except FileNotFoundError:
                return
            shutil.rmtree(trash, ignore_errors=True)

    async def list_keys(self, prefix: str = "") -> list[str]:
        keys: list[str] = []
        for manifest_path in self._root.glob(f"*/{_MANIFEST}"):
            name = manifest_path.parent.name
            if name.startswith(_STAGING_PREFIX) or _TRASH_MARKER in name:
                continue
            try:
                manifest = _Manifest.model_validate_json(
                    manifest_path.read_text(encoding="utf-8")
                )
            except (OSError, ValueError):
                continue
            if manifest.key.startswith(prefix):
                keys.append(manifest.key)
        return sorted(keys)

    def _entry_dir(self, key: str) -> Path:
        """Return the directory for a cache key."""
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
        return self._root / digest

    def _trash_path(self, entry_dir: Path) -> Path:
        return entry_dir.with_name(f"{entry_dir.name}{_TRASH_MARKER}{uuid.uuid4().hex}")

    def _swap_in(self, staging: Path, target: Path, attempts: int = 3) -> None:
        """Move staging into place, pushing any current entry aside first.

        Another process may land its own entry between the two renames;
        in that case the newcomer is pushed aside too and we retry.
        """
        for attempt in range(attempts):
            trash: Path | None = None
            if target.exists():
                trash = self._trash_path(target)
                try:
                    os.replace(target, trash)
                except FileNotFoundError:
                    trash = None
            try:
                os.replace(staging, target)
            except OSError:
                if attempt == attempts - 1 or not target.exists():
                    raise
                continue
            finally:
                if trash is not None:
                    shutil.rmtree(trash, ignore_errors=True)
            return
