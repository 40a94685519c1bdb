# src/cache/artifacts.py — v1
"""Move artifact sets between a job workspace and the cache.

Artifact paths are relative POSIX paths. Anything that would resolve
outside the workspace is rejected on both collection and restore.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from pathlib import Path, PurePosixPath


class ArtifactPathError(ValueError):
    """Raised when an artifact path escapes the workspace."""


def collect_artifacts(workspace: Path, paths: Iterable[str]) -> dict[str, bytes]:
    """Read files (directories recursively) under workspace into an artifact set.

    Raises:
        FileNotFoundError: If a listed path does not exist.
        ArtifactPathError: If a listed path escapes the workspace.
    """
    root = workspace.resolve()
    artifacts: dict[str, bytes] = {}
    for raw in paths:
        target = _resolve_inside(root, raw)
        if not target.exists():
            raise FileNotFoundError(f"artifact path not found: {raw}")
        files = sorted(p for p in target.rglob("*") if p.is_file()) if target.is_dir() else [target]
        for file_path in files:
            rel = file_path.resolve().relative_to(root).as_posix()
            artifacts[rel] = file_path.read_bytes()
    return artifacts


def write_artifacts(workspace: Path, artifacts: Mapping[str, bytes]) -> list[Path]:
    """Write an artifact set into workspace, overwriting existing files."""
    root = workspace.resolve()
    written: list[Path] = []
    for rel, data in artifacts.items():
        target = _resolve_inside(root, rel)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        written.append(target)
    return written


def _resolve_inside(root: Path, raw: str) -> Path:
    rel = PurePosixPath(raw)
    if rel.is_absolute() or ".." in rel.parts:
        raise ArtifactPathError(f"artifact path must stay inside the workspace: {raw}")
    target = (root / rel).resolve()
    if target != root and root not in target.parents:
        raise ArtifactPathError(f"artifact path must stay inside the workspace: {raw}")
    return target
