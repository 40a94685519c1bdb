# src/logging/context.py — v2
"""Contextual logging support: attach workflow, pipeline, block and job to records.

asyncio copies the current context into every task it creates, so a
value set inside a job task stays local to that job.
"""

from __future__ import annotations

import contextvars
from dataclasses import dataclass
from typing import Any

_workflow_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "workflow_id", default=None
)
_pipeline_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "pipeline_id", default=None
)
_block: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "block", default=None
)
_job: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "job", default=None
)


@dataclass
class LogContext:
    """Immutable snapshot of current logging context."""

    workflow_id: str | None = None
    pipeline_id: str | None = None
    block: str | None = None
    job: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        workflow_id=_workflow_id.get(),
        pipeline_id=_pipeline_id.get(),
        block=_block.get(),
        job=_job.get(),
    )


def set_pipeline_context(workflow_id: str, pipeline_id: str) -> None:
    """Set pipeline-level context (called once per pipeline run)."""
    _workflow_id.set(workflow_id)
    _pipeline_id.set(pipeline_id)


def set_block_context(block: str | None) -> None:
    _block.set(block)


def set_job_context(job: str | None) -> None:
    _job.set(job)


def clear_context() -> None:
    """Reset all context variables."""
    _workflow_id.set(None)
    _pipeline_id.set(None)
    _block.set(None)
    _job.set(None)
