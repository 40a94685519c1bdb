# tests/unit/core/test_unit_identifiers.py — v1
"""Tests for core/identifiers.py."""

from __future__ import annotations

from conveyor.core.identifiers import (
    MAX_TAG_LENGTH,
    artifact_tag,
    new_workflow_id,
    short_sha,
    slugify,
)


class TestWorkflowIds:
    def test_never_reused(self):
        ids = {new_workflow_id() for _ in range(100)}
        assert len(ids) == 100


class TestArtifactTag:
    def test_format(self):
        assert artifact_tag("master", "0123456789abcdef", "wf-1") == "master_0123456_wf-1"

    def test_short_sha(self):
        assert short_sha("0123456789abcdef") == "0123456"

    def test_sanitises_branch(self):
        tag = artifact_tag("feature/login page", "abcdef0123", "wf")
        assert tag == "feature-login-page_abcdef0_wf"

    def test_leading_separator_replaced(self):
        assert artifact_tag("-hotfix", "abcdef0", "wf").startswith("_hotfix")

    def test_clipped(self):
        tag = artifact_tag("b" * 200, "abcdef0", "wf")
        assert len(tag) == MAX_TAG_LENGTH


class TestSlugify:
    def test_spaces(self):
        assert slugify("Unit Tests") == "Unit-Tests"

    def test_fallback(self):
        assert slugify("..", fallback="job") == "job"
