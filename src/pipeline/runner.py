# src/pipeline/runner.py — v3
"""Pipeline runner: execute blocks in order, jobs within a block concurrently.

Walks the definition block by block. Each block's jobs are started as
asyncio tasks and awaited together; the next block only starts once the
previous one is known to have passed.

Supports:
  - Fail-fast: the first failing block ends the pipeline
  - Cooperative stop: running jobs are cancelled, no new block starts
  - No implicit retries of jobs or commands
"""

from __future__ import annotations

import asyncio
import logging
import shutil
from datetime import datetime, timezone
from pathlib import Path

from conveyor.core.identifiers import slugify
from conveyor.core.models import (
    BlockSpec,
    BlockStatus,
    JobStatus,
    PipelineDefinition,
    PipelineStatus,
)
from conveyor.logging.context import set_block_context, set_pipeline_context
from conveyor.pipeline.executor import JobContext, JobExecutor
from conveyor.pipeline.runs import BlockRun, PipelineRun

logger = logging.getLogger(__name__)


class PipelineRunner:
    """Execute one PipelineRun against its definition.

    Args:
        definition: The pipeline definition being run.
        run: Pending run record, updated in place.
        executor: Job executor shared by all jobs of the pipeline.
        workspace_root: Parent directory for per-pipeline workspaces.
        cleanup_workspace: Remove the pipeline workspace when done.
    """

    def __init__(
        self,
        definition: PipelineDefinition,
        run: PipelineRun,
        executor: JobExecutor,
        workspace_root: Path,
        cleanup_workspace: bool = True,
    ) -> None:
        if run.definition != definition.name:
            raise ValueError(
                f"run {run.id} belongs to '{run.definition}', not '{definition.name}'"
            )
        self._definition = definition
        self._run = run
        self._executor = executor
        self._workspace = Path(workspace_root).expanduser() / run.id
        self._cleanup = cleanup_workspace
        self._stop_requested = False
        self._active: list[asyncio.Task[object]] = []

    @property
    def run_record(self) -> PipelineRun:
        return self._run

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested

    def stop(self) -> None:
        """Request a stop. Running jobs are cancelled; no new block starts."""
        if self._run.is_finished:
            return
        if not self._stop_requested:
            logger.info("Stop requested for pipeline %s", self._run.id)
        self._stop_requested = True
        for task in self._active:
            task.cancel()

    async def run(self) -> PipelineRun:
        """Execute all blocks in order and return the finished run record."""
        run = self._run
        set_pipeline_context(run.workflow_id, run.id)
        run.started_at = datetime.now(timezone.utc)
        run.status = PipelineStatus.RUNNING
        logger.info(
            "Pipeline '%s' started on %s@%s (%d blocks)",
            self._definition.name, run.branch, run.commit_sha[:7], len(run.blocks),
        )

        try:
            run.status = await self._run_blocks()
        except asyncio.CancelledError:
            run.status = PipelineStatus.STOPPED
            raise
        finally:
            set_block_context(None)
            run.finished_at = datetime.now(timezone.utc)
            if self._cleanup:
                shutil.rmtree(self._workspace, ignore_errors=True)

        logger.info(
            "Pipeline '%s' %s in %.1fs",
            self._definition.name, run.status.value, run.duration_seconds or 0.0,
        )
        return run

    async def _run_blocks(self) -> PipelineStatus:
        total = len(self._definition.blocks)
        for index, (spec, block) in enumerate(zip(self._definition.blocks, self._run.blocks)):
            if self._stop_requested:
                return PipelineStatus.STOPPED

            logger.info("Block %d/%d: %s (%d jobs)", index + 1, total, spec.name, len(spec.jobs))
            status = await self._run_block(spec, block)

            if status == BlockStatus.STOPPED:
                return PipelineStatus.STOPPED
            if status != BlockStatus.PASSED:
                logger.error(
                    "Fail-fast: block '%s' %s, %d later blocks not started",
                    spec.name, status.value, total - index - 1,
                )
                return PipelineStatus.FAILED

        return PipelineStatus.PASSED

    async def _run_block(self, spec: BlockSpec, block: BlockRun) -> BlockStatus:
        set_block_context(spec.name)
        block.status = BlockStatus.RUNNING
        ctx = JobContext(
            workflow_id=self._run.workflow_id,
            pipeline_id=self._run.id,
            branch=self._run.branch,
            commit_sha=self._run.commit_sha,
            workspace=self._workspace / slugify(spec.name, "block"),
            environment=self._definition.environment,
        )

        self._active = [
            asyncio.create_task(
                self._executor.execute(job_spec, block.job(job_spec.name), ctx),
                name=f"{self._run.id}:{spec.name}:{job_spec.name}",
            )
            for job_spec in spec.jobs
        ]
        try:
            results = await asyncio.gather(*self._active, return_exceptions=True)
        except asyncio.CancelledError:
            # The runner task itself was cancelled; gather cancelled the jobs
            self._stop_requested = True
            self._settle_block(block)
            raise
        finally:
            self._active = []

        for job_spec, result in zip(spec.jobs, results):
            if isinstance(result, BaseException) and not isinstance(result, asyncio.CancelledError):
                job = block.job(job_spec.name)
                logger.error(
                    "Job '%s' raised unexpectedly", job_spec.name, exc_info=result,
                )
                job.error = f"internal error: {type(result).__name__}"
                job.status = JobStatus.FAILED
                job.finished_at = datetime.now(timezone.utc)

        self._settle_block(block)
        logger.info("Block '%s' %s", spec.name, block.status.value)
        return block.status

    def _settle_block(self, block: BlockRun) -> None:
        """Mark jobs cancelled before they started as STOPPED, then derive."""
        if self._stop_requested:
            for job in block.jobs:
                if job.status in (JobStatus.PENDING, JobStatus.RUNNING):
                    job.status = JobStatus.STOPPED
                    job.finished_at = datetime.now(timezone.utc)
        block.status = block.derive_status(stop_requested=self._stop_requested)
