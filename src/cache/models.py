# src/cache/models.py — v1
"""Cache domain models: CacheEntry, CacheLookupResult."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, Field


class CacheEntry(BaseModel):
    """Artifact set stored under an opaque key.

    ``artifacts`` maps a relative POSIX path to the file contents.
    """

    key: str
    artifacts: dict[str, bytes] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def size_bytes(self) -> int:
        return sum(len(data) for data in self.artifacts.values())


class CacheLookupResult(BaseModel):
    """Result of a restore: either a hit carrying the entry, or a miss.

    A miss is not an error. Callers branch on ``hit``.
    """

    key: str
    entry: CacheEntry | None = None

    @property
    def hit(self) -> bool:
        return self.entry is not None

    @property
    def artifacts(self) -> dict[str, bytes]:
        return dict(self.entry.artifacts) if self.entry is not None else {}
