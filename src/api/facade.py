# src/api/facade.py — v3
"""Public API facade: single entry point for triggering and driving pipelines.

Usage:
    from conveyor.api.facade import Conveyor
    conveyor = Conveyor.from_settings()
    pipeline_id = await conveyor.trigger("build", TriggerEvent(branch="master", commit_sha=sha))
    await conveyor.wait_idle()

The facade owns every PipelineRunner it starts, the completion queue and
the promotion consumer loop reading it. Pipeline execution never calls
the promotion engine directly; it only publishes PipelineCompleted.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from conveyor.config.settings import Settings
from conveyor.core.identifiers import new_workflow_id
from conveyor.core.models import PipelineDefinition, PipelineStatus, TriggerEvent
from conveyor.pipeline.events import PipelineCompleted
from conveyor.pipeline.executor import JobExecutor
from conveyor.pipeline.runner import PipelineRunner
from conveyor.pipeline.runs import PipelineRun
from conveyor.promotion.engine import AvailablePromotion, PromotionEngine

if TYPE_CHECKING:
    from conveyor.cache.base_cache_store import BaseCacheStore
    from conveyor.definitions.loader import DefinitionCatalog
    from conveyor.secrets.base_secret_store import BaseSecretStore

logger = logging.getLogger(__name__)


class PipelineNotFoundError(LookupError):
    """Raised when a pipeline id was never triggered by this facade."""


class Conveyor:
    """Pipeline engine facade.

    Args:
        catalog: Validated pipeline definitions.
        secret_store: Secret bundle backend.
        cache_store: Artifact cache backend.
        settings: Global settings. Loaded from .env if None.
        executor: Job executor. Built from settings if None.
    """

    def __init__(
        self,
        catalog: DefinitionCatalog,
        secret_store: BaseSecretStore,
        cache_store: BaseCacheStore,
        settings: Settings | None = None,
        executor: JobExecutor | None = None,
    ) -> None:
        self._settings = settings or Settings()
        self._catalog = catalog
        self._secrets = secret_store
        self._cache = cache_store
        self._executor = executor or JobExecutor(
            secret_store,
            cache_store,
            env_passthrough=self._settings.env_passthrough_list,
            stop_grace_seconds=self._settings.stop_grace_seconds,
            redaction_mask=self._settings.redaction_mask,
        )
        self._promotions = PromotionEngine(catalog, self.trigger)
        self._runners: dict[str, PipelineRunner] = {}
        self._tasks: dict[str, asyncio.Task[PipelineRun]] = {}
        self._events: asyncio.Queue[PipelineCompleted] | None = None
        self._consumer: asyncio.Task[None] | None = None

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> Conveyor:
        """Build a facade with the catalog and stores named by settings."""
        from conveyor.cache.cache_factory import create_cache_store
        from conveyor.definitions.loader import DefinitionCatalog
        from conveyor.secrets.secret_factory import create_secret_store

        settings = settings or Settings()
        return cls(
            catalog=DefinitionCatalog.from_directory(settings.definitions_dir),
            secret_store=create_secret_store(settings),
            cache_store=create_cache_store(settings),
            settings=settings,
        )

    @property
    def catalog(self) -> DefinitionCatalog:
        return self._catalog

    @property
    def cache_store(self) -> BaseCacheStore:
        return self._cache

    # --- Triggering ---

    async def trigger(
        self,
        pipeline: str,
        event: TriggerEvent,
        promoted_from: str | None = None,
    ) -> str:
        """Start a pipeline and return its id without waiting for it.

        A new workflow id is generated unless the event carries one
        (promotions carry the source pipeline's id forward).

        Raises:
            DefinitionError: If the pipeline definition is unknown.
            SecretNotFoundError: If a job references an unknown bundle.
        """
        definition = self._catalog.get(pipeline)
        await self._check_secrets(definition)

        workflow_id = event.workflow_id or new_workflow_id()
        event = event.model_copy(update={"workflow_id": workflow_id})
        run = PipelineRun.from_definition(
            definition, event, workflow_id=workflow_id, promoted_from=promoted_from,
        )
        runner = PipelineRunner(
            definition,
            run,
            self._executor,
            workspace_root=self._settings.workspace_root,
            cleanup_workspace=self._settings.workspace_cleanup,
        )

        events = self._ensure_consumer()
        self._runners[run.id] = runner
        self._tasks[run.id] = asyncio.create_task(
            self._execute(runner, events), name=f"pipeline:{run.id}",
        )
        logger.info(
            "Triggered '%s' as %s (workflow %s, source %s)",
            pipeline, run.id, workflow_id, event.source,
        )
        return run.id

    async def stop(self, pipeline_id: str) -> None:
        """Request a stop; running jobs end Stopped, no new block starts."""
        self._runner(pipeline_id).stop()

    # --- Inspection ---

    def get(self, pipeline_id: str) -> PipelineRun:
        """Return the run record of a pipeline, finished or not."""
        return self._runner(pipeline_id).run_record

    def runs(self, workflow_id: str | None = None) -> list[PipelineRun]:
        """All run records, oldest first, optionally for one workflow."""
        records = [r.run_record for r in self._runners.values()]
        if workflow_id is not None:
            records = [r for r in records if r.workflow_id == workflow_id]
        return sorted(records, key=lambda r: r.created_at)

    # --- Promotions ---

    def list_available(self, pipeline_id: str) -> list[AvailablePromotion]:
        """Eligible Manual promotions of a completed pipeline not yet fired."""
        self._runner(pipeline_id)
        return self._promotions.list_available(pipeline_id)

    async def fire(self, pipeline_id: str, promotion: str) -> str:
        """Fire an available Manual promotion; returns the new pipeline id.

        Raises:
            PromotionError: If the promotion is not available.
        """
        self._runner(pipeline_id)
        return await self._promotions.fire(pipeline_id, promotion)

    # --- Waiting ---

    async def wait(self, pipeline_id: str) -> PipelineRun:
        """Wait for one pipeline to finish and its completion to be published."""
        task = self._tasks.get(pipeline_id)
        if task is None:
            raise PipelineNotFoundError(f"unknown pipeline id '{pipeline_id}'")
        await asyncio.wait({task})
        return self.get(pipeline_id)

    async def wait_idle(self) -> None:
        """Wait until no pipeline runs and every completion was evaluated.

        Auto promotions started while waiting are waited for as well.
        """
        while True:
            pending = [t for t in self._tasks.values() if not t.done()]
            if pending:
                await asyncio.wait(pending)
                continue
            if self._events is not None:
                await self._events.join()
            if all(t.done() for t in self._tasks.values()):
                return

    async def close(self) -> None:
        """Stop running pipelines, end the consumer loop, close the cache."""
        for runner in self._runners.values():
            runner.stop()
        if self._tasks:
            await asyncio.gather(*self._tasks.values(), return_exceptions=True)
        if self._consumer is not None:
            self._consumer.cancel()
            await asyncio.gather(self._consumer, return_exceptions=True)
            self._consumer = None
        self._cache.close()

    async def __aenter__(self) -> Conveyor:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # --- Internals ---

    def _runner(self, pipeline_id: str) -> PipelineRunner:
        runner = self._runners.get(pipeline_id)
        if runner is None:
            raise PipelineNotFoundError(f"unknown pipeline id '{pipeline_id}'")
        return runner

    def _ensure_consumer(self) -> asyncio.Queue[PipelineCompleted]:
        if self._events is None:
            self._events = asyncio.Queue()
        if self._consumer is None or self._consumer.done():
            self._consumer = asyncio.create_task(
                self._promotions.consume(self._events), name="promotion-consumer",
            )
        return self._events

    async def _check_secrets(self, definition: PipelineDefinition) -> None:
        names = sorted({s for b in definition.blocks for j in b.jobs for s in j.secrets})
        for name in names:
            await self._secrets.resolve(name)

    async def _execute(
        self, runner: PipelineRunner, events: asyncio.Queue[PipelineCompleted],
    ) -> PipelineRun:
        run = runner.run_record
        try:
            await runner.run()
        except Exception:
            logger.exception("Pipeline %s aborted", run.id)
            if not run.is_finished:
                run.status = PipelineStatus.FAILED

        if self._settings.report_dir is not None:
            self._write_report(run)

        await events.put(PipelineCompleted.from_run(run))
        return run

    def _write_report(self, run: PipelineRun) -> None:
        from conveyor.tracking.exporter import export_run_json

        path = self._settings.report_dir.expanduser() / f"{run.id}.json"
        try:
            export_run_json(run, path)
        except OSError:
            logger.exception("Could not write run report to %s", path)
