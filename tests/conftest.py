# tests/conftest.py — v2
"""Shared test fixtures for all unit and integration tests.

Provides in-memory secret and cache stores, a job executor wired to
them, a job context rooted in a temp directory and definition builders.
Commands run through the real shell; nothing else leaves the process.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import pytest
import yaml

from conveyor.cache.memory_store import MemoryCacheStore
from conveyor.config.settings import Settings, load_settings
from conveyor.core.models import PipelineDefinition
from conveyor.definitions.loader import DefinitionCatalog, parse_definition
from conveyor.logging.context import clear_context
from conveyor.pipeline.executor import JobContext, JobExecutor
from conveyor.secrets.memory_store import MemorySecretStore

REGISTRY_PASSWORD = "hunter2-s3cr3t"
KUBE_TOKEN = "tok-abc123"
COMMIT_SHA = "0123456789abcdef0123456789abcdef01234567"


# === Helpers ===


def _make_definition(data: dict[str, Any] | str) -> PipelineDefinition:
    """Build a definition from a dict or a YAML document."""
    if isinstance(data, str):
        data = yaml.safe_load(data)
    return parse_definition(data, source="<test>")


def _simple_pipeline(name: str, *blocks: tuple[str, dict[str, list[str]]], **extra: Any) -> dict[str, Any]:
    """Definition dict: blocks given as (block name, {job name: commands})."""
    return {
        "name": name,
        "blocks": [
            {"name": block, "jobs": [{"name": job, "commands": cmds} for job, cmds in jobs.items()]}
            for block, jobs in blocks
        ],
        **extra,
    }


# === FIXTURES: Builders ===


@pytest.fixture
def make_definition():
    """Factory: definition from a dict or YAML text."""
    return _make_definition


@pytest.fixture
def simple_pipeline():
    """Factory: definition dict from (block, {job: commands}) tuples."""
    return _simple_pipeline


# === FIXTURES: Stores ===


@pytest.fixture(autouse=True)
def _reset_log_context():
    clear_context()
    yield
    clear_context()


@pytest.fixture
def secret_store() -> MemorySecretStore:
    return MemorySecretStore({
        "registry": {"REGISTRY_USER": "bot", "REGISTRY_PASSWORD": REGISTRY_PASSWORD},
        "kube": {"KUBE_TOKEN": KUBE_TOKEN},
    })


@pytest.fixture
def cache_store() -> MemoryCacheStore:
    return MemoryCacheStore()


@pytest.fixture
def host_env() -> dict[str, str]:
    """Host environment with one variable that must never reach a job."""
    return {
        "PATH": os.environ.get("PATH", "/usr/bin:/bin"),
        "HOME": "/tmp",
        "LEAKY_HOST_VAR": "should-not-leak",
    }


@pytest.fixture
def executor(secret_store, cache_store, host_env) -> JobExecutor:
    return JobExecutor(
        secret_store,
        cache_store,
        host_env=host_env,
        stop_grace_seconds=1.0,
    )


@pytest.fixture
def job_context(tmp_path: Path) -> JobContext:
    return JobContext(
        workflow_id="wf-1",
        pipeline_id="pipeline-1",
        branch="master",
        commit_sha=COMMIT_SHA,
        workspace=tmp_path / "workspace",
        environment={"CLUSTER_CONTEXT": "staging"},
    )


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return load_settings(
        _env_file=None,
        workspace_root=tmp_path / "workspaces",
        cache_backend="memory",
        secrets_backend="memory",
        stop_grace_seconds=1.0,
    )


@pytest.fixture
def promotion_catalog() -> DefinitionCatalog:
    """build -> deploy-staging (auto, master) and deploy-prod (manual)."""
    build = _simple_pipeline(
        "build",
        ("Build", {"compile": ["echo compiled"]}),
        promotions=[
            {
                "name": "to-staging",
                "pipeline": "deploy-staging",
                "mode": "auto",
                "when": {"result": "passed", "branches": ["master"]},
            },
            {
                "name": "to-production",
                "pipeline": "deploy-prod",
                "mode": "manual",
                "when": {"result": "passed"},
            },
        ],
    )
    staging = _simple_pipeline("deploy-staging", ("Deploy", {"apply": ["echo staging $CONVEYOR_WORKFLOW_ID"]}))
    prod = _simple_pipeline("deploy-prod", ("Deploy", {"apply": ["echo prod $CONVEYOR_WORKFLOW_ID"]}))
    return DefinitionCatalog([_make_definition(d) for d in (build, staging, prod)])
