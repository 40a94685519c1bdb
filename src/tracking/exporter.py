# src/tracking/exporter.py — v2
"""Pipeline run export to JSON and summary text."""

from __future__ import annotations

import logging
from pathlib import Path

from conveyor.core.models import JobStatus
from conveyor.pipeline.runs import PipelineRun

logger = logging.getLogger(__name__)

_JOB_MARKS = {
    JobStatus.PASSED: "✓",
    JobStatus.FAILED: "✗",
    JobStatus.TIMED_OUT: "⧗",
    JobStatus.STOPPED: "■",
}


def export_run_json(run: PipelineRun, path: Path) -> None:
    """Export a pipeline run, including redacted job output, as JSON.

    Args:
        run: Pipeline run record.
        path: Output file path.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(run.model_dump_json(indent=2), encoding="utf-8")
    logger.debug("Run report for %s written to %s", run.id, path)


def load_run_json(path: Path) -> PipelineRun:
    """Read back a report written by export_run_json."""
    return PipelineRun.model_validate_json(path.read_text(encoding="utf-8"))


def export_run_summary(run: PipelineRun, show_output: bool = False) -> str:
    """Generate a human-readable summary of a pipeline run.

    Args:
        run: Pipeline run record.
        show_output: Append the captured output of jobs that did not pass.

    Returns:
        Formatted summary string.
    """
    duration = run.duration_seconds
    lines: list[str] = [
        f"=== Pipeline {run.definition}: {run.status.value.upper()} ===",
        f"Pipeline ID : {run.id}",
        f"Workflow ID : {run.workflow_id}",
        f"Commit      : {run.branch}@{run.commit_sha[:7]}",
        f"Duration    : {duration:.1f}s" if duration is not None else "Duration    : -",
    ]
    if run.promoted_from:
        lines.append(f"Promoted by : {run.promoted_from}")

    for block in run.blocks:
        lines.append(f"\n--- {block.name} [{block.status.value}] ---")
        for job in block.jobs:
            job_duration = job.duration_seconds
            lines.append(
                f"  {_JOB_MARKS.get(job.status, ' ')} {job.name:30s} | "
                f"{job.status.value:9s} | "
                f"{len(job.commands):3d} cmds | "
                + (f"{job_duration:.1f}s" if job_duration is not None else "-")
            )
            if show_output and job.status not in (JobStatus.PASSED, JobStatus.PENDING):
                lines.extend(f"      {line}" for line in job.output)

    return "\n".join(lines)
