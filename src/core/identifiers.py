# src/core/identifiers.py — v1
"""Identifier helpers: workflow/pipeline ids, short commit hashes, artifact tags.

Cache keys and artifact tags are separate concerns. Cache keys are
whatever a definition declares; the artifact tag is the release
identifier exposed to jobs as CONVEYOR_ARTIFACT_TAG.
"""

from __future__ import annotations

import re
import uuid

SHORT_SHA_LENGTH = 7
MAX_TAG_LENGTH = 128

_TAG_UNSAFE = re.compile(r"[^A-Za-z0-9_.-]")


def new_workflow_id() -> str:
    """Generate a fresh workflow id. Never reused across triggers."""
    return str(uuid.uuid4())


def new_pipeline_id() -> str:
    return str(uuid.uuid4())


def short_sha(commit_sha: str, length: int = SHORT_SHA_LENGTH) -> str:
    return commit_sha[:length]


def artifact_tag(branch: str, commit_sha: str, workflow_id: str) -> str:
    """Build a registry-safe image tag ``<branch>_<short-sha>_<workflow-id>``.

    Characters outside ``[A-Za-z0-9_.-]`` become ``-`` and the tag is
    clipped to the 128-character limit registries enforce. A leading
    ``.`` or ``-`` is replaced since tags must start with a word character.
    """
    raw = f"{branch}_{short_sha(commit_sha)}_{workflow_id}"
    tag = _TAG_UNSAFE.sub("-", raw)
    if tag[0] in ".-":
        tag = "_" + tag[1:]
    return tag[:MAX_TAG_LENGTH]


def slugify(name: str, fallback: str = "item") -> str:
    """Filesystem-safe directory name for a block or job."""
    slug = "".join(c if c.isalnum() or c in "-_." else "-" for c in name).strip(".")
    return slug or fallback
