# src/core/models.py — v1
"""Shared Pydantic domain models: statuses, pipeline definitions, triggers.

Definition models mirror the YAML definition format one-to-one, so a
definition file is validated by constructing a PipelineDefinition.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# === STATUSES ===


class JobStatus(str, Enum):
    """Lifecycle of a single job."""

    PENDING = "pending"
    RUNNING = "running"
    PASSED = "passed"
    FAILED = "failed"
    STOPPED = "stopped"
    TIMED_OUT = "timed_out"


class BlockStatus(str, Enum):
    """Aggregate status of a block, derived from its jobs."""

    PENDING = "pending"
    RUNNING = "running"
    PASSED = "passed"
    FAILED = "failed"
    STOPPED = "stopped"


class PipelineStatus(str, Enum):
    """Lifecycle of a pipeline run. PASSED, FAILED and STOPPED are terminal."""

    PENDING = "pending"
    RUNNING = "running"
    PASSED = "passed"
    FAILED = "failed"
    STOPPED = "stopped"

    @property
    def is_terminal(self) -> bool:
        return self in (PipelineStatus.PASSED, PipelineStatus.FAILED, PipelineStatus.STOPPED)


class TriggerMode(str, Enum):
    """How a promotion starts its target pipeline."""

    AUTO = "auto"
    MANUAL = "manual"


# === COMMANDS ===


class RunCommand(BaseModel):
    """A shell command line executed in the job workspace."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    run: str = Field(min_length=1)

    @property
    def description(self) -> str:
        return self.run


class CacheCommand(BaseModel):
    """Artifact cache operation executed as a job step.

    ``restore`` with ``on_miss`` is the build-or-restore decision: the
    ``on_miss`` commands only run when the key is not found, and
    ``store_after`` paths are stored under the same key once they pass.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    cache: Literal["store", "restore", "delete"]
    key: str = Field(min_length=1)
    paths: list[str] = Field(default_factory=list)
    on_miss: list[RunCommand] = Field(default_factory=list)
    store_after: list[str] = Field(default_factory=list)

    @field_validator("on_miss", mode="before")
    @classmethod
    def coerce_on_miss(cls, v: Any) -> Any:
        return [_coerce_command(c) for c in v] if isinstance(v, list) else v

    @model_validator(mode="after")
    def check_operation_fields(self) -> CacheCommand:
        if self.cache == "store" and not self.paths:
            raise ValueError("cache store requires at least one path")
        if self.cache != "store" and self.paths:
            raise ValueError(f"cache {self.cache} does not take paths")
        if self.cache != "restore" and (self.on_miss or self.store_after):
            raise ValueError("on_miss and store_after are only valid for cache restore")
        if self.store_after and not self.on_miss:
            raise ValueError("store_after requires on_miss commands")
        return self

    @property
    def description(self) -> str:
        return f"cache {self.cache} {self.key}"


Command = Union[RunCommand, CacheCommand]


def _coerce_command(value: Any) -> Any:
    """Allow bare strings in YAML as shorthand for ``{run: ...}``."""
    if isinstance(value, str):
        return {"run": value}
    return value


# === DEFINITIONS ===


class JobSpec(BaseModel):
    """Declarative job: ordered commands plus the secret bundles it may see."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1)
    commands: list[Command] = Field(min_length=1)
    secrets: list[str] = Field(default_factory=list)
    timeout_seconds: float | None = Field(default=None, gt=0)

    @field_validator("commands", mode="before")
    @classmethod
    def coerce_commands(cls, v: Any) -> Any:
        return [_coerce_command(c) for c in v] if isinstance(v, list) else v


class BlockSpec(BaseModel):
    """Set of jobs run concurrently; gates progression to the next block."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1)
    jobs: list[JobSpec] = Field(min_length=1)

    @model_validator(mode="after")
    def check_unique_jobs(self) -> BlockSpec:
        names = [j.name for j in self.jobs]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"duplicate job names in block '{self.name}': {duplicates}")
        return self


class PromotionPredicate(BaseModel):
    """Condition on the completed pipeline.

    ``result`` None matches any terminal result; ``branches`` None matches
    any branch. Branch matching is exact, with no pattern expansion.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    result: PipelineStatus | None = None
    branches: list[str] | None = None

    @field_validator("result")
    @classmethod
    def check_terminal(cls, v: PipelineStatus | None) -> PipelineStatus | None:
        if v is not None and not v.is_terminal:
            raise ValueError(f"result must be a terminal status, got '{v.value}'")
        return v

    @field_validator("branches")
    @classmethod
    def check_branches(cls, v: list[str] | None) -> list[str] | None:
        if v is not None and not v:
            raise ValueError("branches must list at least one branch (omit it to match any)")
        return v

    def matches(self, status: PipelineStatus, branch: str) -> bool:
        if self.result is not None and status != self.result:
            return False
        if self.branches is not None and branch not in self.branches:
            return False
        return True


class PromotionRule(BaseModel):
    """Chains a completed pipeline to a target pipeline definition."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str = Field(min_length=1)
    pipeline: str = Field(min_length=1)
    mode: TriggerMode = TriggerMode.MANUAL
    when: PromotionPredicate = Field(default_factory=PromotionPredicate)


class PipelineDefinition(BaseModel):
    """A complete pipeline definition as read from one YAML file.

    ``environment`` holds explicit configuration (for example the deploy
    cluster context) threaded into every job of the pipeline.
    """

    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1)
    environment: dict[str, str] = Field(default_factory=dict)
    blocks: list[BlockSpec] = Field(min_length=1)
    promotions: list[PromotionRule] = Field(default_factory=list)

    @field_validator("environment", mode="before")
    @classmethod
    def stringify_environment(cls, v: Any) -> Any:
        if isinstance(v, dict):
            return {str(k): "" if val is None else str(val) for k, val in v.items()}
        return v

    @model_validator(mode="after")
    def check_unique_names(self) -> PipelineDefinition:
        for label, names in (
            ("block", [b.name for b in self.blocks]),
            ("promotion", [p.name for p in self.promotions]),
        ):
            duplicates = sorted({n for n in names if names.count(n) > 1})
            if duplicates:
                raise ValueError(f"duplicate {label} names: {duplicates}")
        return self


# === TRIGGERS ===


class TriggerEvent(BaseModel):
    """What starts a pipeline: a source push, a manual request or a promotion."""

    model_config = ConfigDict(frozen=True)

    branch: str = Field(min_length=1)
    commit_sha: str = Field(min_length=1)
    workflow_id: str | None = None
    source: Literal["push", "manual", "promotion"] = "push"
