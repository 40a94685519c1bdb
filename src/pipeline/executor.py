# src/pipeline/executor.py — v2
"""Stage executor: run one job's commands in order inside its own environment.

The job environment contains strictly:
  - host variables named in the pass-through allow-list (PATH, HOME by default)
  - the pipeline's declared ``environment`` values
  - the merged variables of every secret bundle the job declares
  - workflow-scoped identifiers (CONVEYOR_*), which nothing can override

Every line of output is redacted before it is stored on the JobRun.
Cancellation kills the command's process group: SIGTERM first, SIGKILL
after the grace period.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from string import Template

from conveyor.cache.artifacts import collect_artifacts, write_artifacts
from conveyor.cache.base_cache_store import BaseCacheStore
from conveyor.core.identifiers import artifact_tag, short_sha, slugify
from conveyor.core.models import CacheCommand, JobSpec, JobStatus, RunCommand
from conveyor.logging.context import set_job_context
from conveyor.pipeline.redaction import DEFAULT_MASK, Redactor
from conveyor.pipeline.runs import CommandRecord, JobRun
from conveyor.secrets.base_secret_store import (
    BaseSecretStore,
    SecretBundle,
    SecretNotFoundError,
)

logger = logging.getLogger(__name__)

DEFAULT_PASSTHROUGH = ("PATH", "HOME")
DEFAULT_STOP_GRACE_S = 5.0
# StreamReader line limit; longer lines fail the command instead of hanging
OUTPUT_LINE_LIMIT = 1024 * 1024


@dataclass(frozen=True)
class JobContext:
    """Per-pipeline values threaded into every job."""

    workflow_id: str
    pipeline_id: str
    branch: str
    commit_sha: str
    workspace: Path
    environment: Mapping[str, str] = field(default_factory=dict)

    def identifiers(self, job_name: str) -> dict[str, str]:
        return {
            "CONVEYOR_WORKFLOW_ID": self.workflow_id,
            "CONVEYOR_PIPELINE_ID": self.pipeline_id,
            "CONVEYOR_GIT_BRANCH": self.branch,
            "CONVEYOR_GIT_COMMIT_SHA": self.commit_sha,
            "CONVEYOR_GIT_COMMIT_SHORT": short_sha(self.commit_sha),
            "CONVEYOR_ARTIFACT_TAG": artifact_tag(
                self.branch, self.commit_sha, self.workflow_id
            ),
            "CONVEYOR_JOB_NAME": job_name,
        }


class JobExecutor:
    """Runs JobSpecs against a secret store and an artifact cache.

    Args:
        secret_store: Resolves the bundles a job declares.
        cache_store: Backend for cache store/restore/delete steps.
        env_passthrough: Host variable names copied into job environments.
        host_env: Source for pass-through values. Defaults to os.environ.
        stop_grace_seconds: Delay between SIGTERM and SIGKILL on cancel.
        redaction_mask: Replacement text for secret values in output.
    """

    def __init__(
        self,
        secret_store: BaseSecretStore,
        cache_store: BaseCacheStore,
        env_passthrough: Sequence[str] = DEFAULT_PASSTHROUGH,
        host_env: Mapping[str, str] | None = None,
        stop_grace_seconds: float = DEFAULT_STOP_GRACE_S,
        redaction_mask: str = DEFAULT_MASK,
    ) -> None:
        self._secrets = secret_store
        self._cache = cache_store
        self._passthrough = tuple(env_passthrough)
        self._host_env = host_env
        self._stop_grace_s = stop_grace_seconds
        self._mask = redaction_mask

    async def execute(self, spec: JobSpec, job: JobRun, ctx: JobContext) -> JobRun:
        """Run a job to a terminal status, updating ``job`` in place.

        Raises:
            asyncio.CancelledError: Re-raised after the job is marked STOPPED.
        """
        set_job_context(spec.name)
        job.status = JobStatus.RUNNING
        job.started_at = _now()
        logger.info("Job '%s' started (%d commands)", spec.name, len(spec.commands))

        try:
            bundles = [await self._secrets.resolve(name) for name in spec.secrets]
        except SecretNotFoundError as exc:
            job.error = f"configuration error: {exc}"
            job.output.append(job.error)
            self._finish(job, JobStatus.FAILED)
            return job
        except asyncio.CancelledError:
            job.error = "stopped"
            self._finish(job, JobStatus.STOPPED)
            raise

        env = self.build_environment(bundles, ctx, spec.name)
        redactor = Redactor(
            (v for b in bundles for v in b.secret_values), mask=self._mask,
        )
        workspace = ctx.workspace / slugify(spec.name, "job")

        try:
            workspace.mkdir(parents=True, exist_ok=True)
            if spec.timeout_seconds is not None:
                passed = await asyncio.wait_for(
                    self._run_commands(spec, job, env, workspace, redactor),
                    timeout=spec.timeout_seconds,
                )
            else:
                passed = await self._run_commands(spec, job, env, workspace, redactor)
        except asyncio.TimeoutError:
            # Must precede OSError: TimeoutError subclasses it on 3.11+
            job.error = f"timed out after {spec.timeout_seconds}s"
            job.output.append(job.error)
            self._finish(job, JobStatus.TIMED_OUT)
            return job
        except OSError as exc:
            job.error = redactor.redact(f"execution error: {exc}")
            job.output.append(job.error)
            self._finish(job, JobStatus.FAILED)
            return job
        except asyncio.CancelledError:
            job.error = "stopped"
            self._finish(job, JobStatus.STOPPED)
            raise

        self._finish(job, JobStatus.PASSED if passed else JobStatus.FAILED)
        return job

    def build_environment(
        self,
        bundles: Sequence[SecretBundle],
        ctx: JobContext,
        job_name: str,
    ) -> dict[str, str]:
        """Assemble the job environment. Later bundles override earlier ones."""
        host_env = os.environ if self._host_env is None else self._host_env
        env = {name: host_env[name] for name in self._passthrough if name in host_env}
        env.update(ctx.environment)
        for bundle in bundles:
            env.update(bundle.variables)
        env.update(ctx.identifiers(job_name))
        return env

    async def _run_commands(
        self,
        spec: JobSpec,
        job: JobRun,
        env: dict[str, str],
        workspace: Path,
        redactor: Redactor,
    ) -> bool:
        """Run commands in order; stop at the first failure."""
        for index, command in enumerate(spec.commands):
            if isinstance(command, CacheCommand):
                passed = await self._run_cache(command, job, env, workspace, redactor)
            else:
                passed = await self._run_shell(command, job, env, workspace, redactor)
            if not passed:
                skipped = len(spec.commands) - index - 1
                logger.warning(
                    "Job '%s' failed at command %d/%d, %d skipped",
                    spec.name, index + 1, len(spec.commands), skipped,
                )
                return False
        return True

    async def _run_shell(
        self,
        command: RunCommand,
        job: JobRun,
        env: dict[str, str],
        workspace: Path,
        redactor: Redactor,
    ) -> bool:
        record = CommandRecord(description=redactor.redact(command.run))
        job.commands.append(record)
        job.output.append(f"$ {record.description}")

        try:
            proc = await asyncio.create_subprocess_shell(
                command.run,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                env=env,
                cwd=str(workspace),
                start_new_session=True,
                limit=OUTPUT_LINE_LIMIT,
            )
        except OSError as exc:
            job.output.append(redactor.redact(f"execution error: {exc}"))
            record.finished_at = _now()
            return False

        stdout = proc.stdout
        if stdout is None:
            raise RuntimeError(f"no output pipe for command: {record.description}")
        try:
            async for raw in stdout:
                line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
                job.output.append(redactor.redact(line))
            record.exit_code = await proc.wait()
        except asyncio.CancelledError:
            await self._terminate(proc)
            record.exit_code = proc.returncode
            record.finished_at = _now()
            raise
        except ValueError as exc:
            # Line longer than OUTPUT_LINE_LIMIT
            job.output.append(f"execution error: {exc}")
            await self._terminate(proc)
            record.exit_code = proc.returncode
            record.finished_at = _now()
            return False

        record.finished_at = _now()
        record.passed = record.exit_code == 0
        if not record.passed:
            job.output.append(f"command exited with status {record.exit_code}")
        return record.passed

    async def _run_cache(
        self,
        command: CacheCommand,
        job: JobRun,
        env: dict[str, str],
        workspace: Path,
        redactor: Redactor,
    ) -> bool:
        key = Template(command.key).safe_substitute(env)
        record = CommandRecord(description=redactor.redact(f"cache {command.cache} {key}"))
        job.commands.append(record)
        job.output.append(f"$ {record.description}")

        try:
            if command.cache == "store":
                passed = await self._cache_store(key, command.paths, job, workspace, redactor)
            elif command.cache == "delete":
                await self._cache.delete(key)
                job.output.append(redactor.redact(f"cache entry {key} deleted"))
                passed = True
            else:
                passed = await self._cache_restore(command, key, job, env, workspace, redactor)
        except asyncio.CancelledError:
            record.finished_at = _now()
            raise
        except (OSError, ValueError) as exc:
            job.output.append(redactor.redact(f"cache error: {exc}"))
            passed = False
        except Exception as exc:
            # Backend failure (e.g. redis unreachable) fails the step, not the engine
            logger.exception("Cache backend error for key %s", redactor.redact(key))
            job.output.append(redactor.redact(f"cache error: {exc}"))
            passed = False

        record.finished_at = _now()
        record.passed = passed
        return passed

    async def _cache_store(
        self,
        key: str,
        paths: Sequence[str],
        job: JobRun,
        workspace: Path,
        redactor: Redactor,
    ) -> bool:
        artifacts = collect_artifacts(workspace, paths)
        entry = await self._cache.store(key, artifacts)
        job.output.append(redactor.redact(
            f"cache entry {key} stored ({len(entry.artifacts)} files, {entry.size_bytes} bytes)"
        ))
        return True

    async def _cache_restore(
        self,
        command: CacheCommand,
        key: str,
        job: JobRun,
        env: dict[str, str],
        workspace: Path,
        redactor: Redactor,
    ) -> bool:
        result = await self._cache.restore(key)
        if result.hit:
            write_artifacts(workspace, result.artifacts)
            job.output.append(redactor.redact(
                f"cache hit for {key} ({len(result.artifacts)} files restored)"
            ))
            return True

        job.output.append(redactor.redact(f"cache miss for {key}"))
        for fallback in command.on_miss:
            if not await self._run_shell(fallback, job, env, workspace, redactor):
                return False
        if command.store_after:
            return await self._cache_store(key, command.store_after, job, workspace, redactor)
        return True

    async def _terminate(self, proc: asyncio.subprocess.Process) -> None:
        """SIGTERM the process group, then SIGKILL after the grace period."""
        if proc.returncode is not None:
            return
        _signal_group(proc, signal.SIGTERM)
        try:
            await asyncio.wait_for(proc.wait(), timeout=self._stop_grace_s)
        except asyncio.TimeoutError:
            _signal_group(proc, signal.SIGKILL)
            await proc.wait()

    @staticmethod
    def _finish(job: JobRun, status: JobStatus) -> None:
        job.status = status
        job.finished_at = _now()
        logger.info("Job '%s' %s", job.name, status.value)


def _signal_group(proc: asyncio.subprocess.Process, sig: int) -> None:
    try:
        os.killpg(proc.pid, sig)
    except ProcessLookupError:
        pass


def _now() -> datetime:
    return datetime.now(timezone.utc)
