# src/pipeline/events.py — v1
"""Events published by pipeline execution and consumed by the promotion engine."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from conveyor.core.models import PipelineStatus
from conveyor.pipeline.runs import PipelineRun


class PipelineCompleted(BaseModel):
    """A pipeline reached a terminal status."""

    model_config = ConfigDict(frozen=True)

    pipeline_id: str
    definition: str
    status: PipelineStatus
    branch: str
    commit_sha: str
    workflow_id: str

    @classmethod
    def from_run(cls, run: PipelineRun) -> PipelineCompleted:
        if not run.status.is_terminal:
            raise ValueError(f"pipeline {run.id} is not finished ({run.status.value})")
        return cls(
            pipeline_id=run.id,
            definition=run.definition,
            status=run.status,
            branch=run.branch,
            commit_sha=run.commit_sha,
            workflow_id=run.workflow_id,
        )
