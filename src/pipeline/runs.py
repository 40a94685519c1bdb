# src/pipeline/runs.py — v1
"""Mutable run records: what happened to a pipeline, its blocks and jobs.

Records are created from a PipelineDefinition when a pipeline is
triggered and updated in place as execution proceeds. They stay
retrievable after completion regardless of outcome.
"""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, Field

from conveyor.core.identifiers import new_pipeline_id
from conveyor.core.models import (
    BlockStatus,
    JobStatus,
    PipelineDefinition,
    PipelineStatus,
    TriggerEvent,
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class CommandRecord(BaseModel):
    """One executed command. ``exit_code`` is None when it never exited."""

    description: str
    exit_code: int | None = None
    passed: bool = False
    started_at: datetime = Field(default_factory=_now)
    finished_at: datetime | None = None


class JobRun(BaseModel):
    """Execution record of one job. ``output`` is already redacted."""

    name: str
    status: JobStatus = JobStatus.PENDING
    commands: list[CommandRecord] = Field(default_factory=list)
    output: list[str] = Field(default_factory=list)
    error: str | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def log(self) -> str:
        return "\n".join(self.output)

    @property
    def duration_seconds(self) -> float | None:
        if self.started_at is None or self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()


class BlockRun(BaseModel):
    """Execution record of one block."""

    name: str
    status: BlockStatus = BlockStatus.PENDING
    jobs: list[JobRun] = Field(default_factory=list)

    def job(self, name: str) -> JobRun:
        for job in self.jobs:
            if job.name == name:
                return job
        raise KeyError(name)

    def derive_status(self, stop_requested: bool = False) -> BlockStatus:
        """Passed iff every job passed.

        A job that failed or timed out makes the block Failed even when a
        stop arrived afterwards; otherwise a stop makes it Stopped.
        """
        statuses = [j.status for j in self.jobs]
        if all(s == JobStatus.PASSED for s in statuses):
            return BlockStatus.PASSED
        if any(s in (JobStatus.FAILED, JobStatus.TIMED_OUT) for s in statuses):
            return BlockStatus.FAILED
        if stop_requested:
            return BlockStatus.STOPPED
        return BlockStatus.FAILED


class PipelineRun(BaseModel):
    """Execution record of one pipeline run."""

    id: str = Field(default_factory=new_pipeline_id)
    definition: str
    workflow_id: str
    trigger: TriggerEvent
    promoted_from: str | None = None
    status: PipelineStatus = PipelineStatus.PENDING
    blocks: list[BlockRun] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_now)
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @classmethod
    def from_definition(
        cls,
        definition: PipelineDefinition,
        trigger: TriggerEvent,
        workflow_id: str,
        promoted_from: str | None = None,
    ) -> PipelineRun:
        """Create a pending record with one BlockRun/JobRun per spec entry."""
        return cls(
            definition=definition.name,
            workflow_id=workflow_id,
            trigger=trigger,
            promoted_from=promoted_from,
            blocks=[
                BlockRun(name=b.name, jobs=[JobRun(name=j.name) for j in b.jobs])
                for b in definition.blocks
            ],
        )

    @property
    def branch(self) -> str:
        return self.trigger.branch

    @property
    def commit_sha(self) -> str:
        return self.trigger.commit_sha

    @property
    def is_finished(self) -> bool:
        return self.status.is_terminal

    @property
    def duration_seconds(self) -> float | None:
        if self.started_at is None or self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()

    def block(self, name: str) -> BlockRun:
        for block in self.blocks:
            if block.name == name:
                return block
        raise KeyError(name)
