# src/promotion/engine.py — v2
"""Promotion engine: chain completed pipelines to their successors.

Consumes PipelineCompleted events. Each completed pipeline is evaluated
exactly once; every promotion rule on its definition is checked
independently against the pipeline's result and branch:
  - Auto rule, predicate true: the target starts immediately with the
    same workflow id, branch and commit
  - Manual rule, predicate true: recorded as available until an external
    actor fires it, at most once
  - Predicate false: nothing happens (not an error)
"""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from pydantic import BaseModel, ConfigDict

from conveyor.core.models import PromotionRule, TriggerEvent, TriggerMode
from conveyor.definitions.loader import DefinitionCatalog
from conveyor.pipeline.events import PipelineCompleted

logger = logging.getLogger(__name__)


class PromotionError(Exception):
    """Raised when firing a promotion that is unknown or no longer available."""


class PipelineLauncher(Protocol):
    """Starts a pipeline; returns the new pipeline id."""

    async def __call__(
        self, pipeline: str, event: TriggerEvent, promoted_from: str | None = None,
    ) -> str: ...


class AvailablePromotion(BaseModel):
    """An eligible Manual promotion waiting for an explicit trigger."""

    model_config = ConfigDict(frozen=True)

    pipeline_id: str
    rule: PromotionRule
    workflow_id: str
    branch: str
    commit_sha: str

    @property
    def name(self) -> str:
        return self.rule.name

    @property
    def target(self) -> str:
        return self.rule.pipeline

    def trigger_event(self) -> TriggerEvent:
        return TriggerEvent(
            branch=self.branch,
            commit_sha=self.commit_sha,
            workflow_id=self.workflow_id,
            source="promotion",
        )


class PromotionEngine:
    """Evaluate promotion rules for completed pipelines.

    Args:
        catalog: Definitions, used to look up each pipeline's rules.
        launcher: Starts successor pipelines.
    """

    def __init__(self, catalog: DefinitionCatalog, launcher: PipelineLauncher) -> None:
        self._catalog = catalog
        self._launcher = launcher
        self._evaluated: set[str] = set()
        self._available: dict[str, dict[str, AvailablePromotion]] = {}
        self._fired: dict[str, set[str]] = {}

    async def evaluate(self, event: PipelineCompleted) -> list[str]:
        """Evaluate all rules for one completed pipeline.

        Returns:
            Ids of the pipelines started by Auto promotions.
        """
        if event.pipeline_id in self._evaluated:
            logger.debug("Pipeline %s already evaluated, skipping", event.pipeline_id)
            return []
        self._evaluated.add(event.pipeline_id)

        definition = self._catalog.get(event.definition)
        started: list[str] = []
        available: dict[str, AvailablePromotion] = {}

        for rule in definition.promotions:
            if not rule.when.matches(event.status, event.branch):
                logger.debug(
                    "Promotion '%s' not eligible (%s on %s)",
                    rule.name, event.status.value, event.branch,
                )
                continue

            promotion = AvailablePromotion(
                pipeline_id=event.pipeline_id,
                rule=rule,
                workflow_id=event.workflow_id,
                branch=event.branch,
                commit_sha=event.commit_sha,
            )
            if rule.mode == TriggerMode.AUTO:
                logger.info(
                    "Auto promotion '%s': %s -> %s", rule.name, event.definition, rule.pipeline,
                )
                try:
                    started.append(await self._launch(promotion))
                except Exception:
                    # Later rules are still evaluated
                    logger.exception(
                        "Auto promotion '%s' of %s failed to start",
                        rule.name, event.pipeline_id,
                    )
            else:
                logger.info("Manual promotion '%s' available for %s", rule.name, event.pipeline_id)
                available[rule.name] = promotion

        if available:
            self._available[event.pipeline_id] = available
        return started

    def list_available(self, pipeline_id: str) -> list[AvailablePromotion]:
        """Eligible, not yet fired Manual promotions of a pipeline."""
        return list(self._available.get(pipeline_id, {}).values())

    async def fire(self, pipeline_id: str, name: str) -> str:
        """Start an available Manual promotion. Each can be fired once.

        Raises:
            PromotionError: If the promotion was never eligible or already fired.
        """
        pending = self._available.get(pipeline_id, {})
        promotion = pending.pop(name, None)
        if promotion is None:
            if name in self._fired.get(pipeline_id, set()):
                raise PromotionError(f"promotion '{name}' of {pipeline_id} was already fired")
            raise PromotionError(f"no available promotion '{name}' for pipeline {pipeline_id}")
        if not pending:
            self._available.pop(pipeline_id, None)

        self._fired.setdefault(pipeline_id, set()).add(name)
        logger.info("Manual promotion '%s' fired for %s", name, pipeline_id)
        return await self._launch(promotion)

    async def consume(self, queue: asyncio.Queue[PipelineCompleted]) -> None:
        """Evaluate events from queue until cancelled."""
        while True:
            event = await queue.get()
            try:
                await self.evaluate(event)
            except Exception:
                logger.exception("Promotion evaluation failed for %s", event.pipeline_id)
            finally:
                queue.task_done()

    async def _launch(self, promotion: AvailablePromotion) -> str:
        return await self._launcher(
            promotion.target, promotion.trigger_event(), promoted_from=promotion.pipeline_id,
        )
