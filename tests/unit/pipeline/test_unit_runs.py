# tests/unit/pipeline/test_unit_runs.py — v1
"""Tests for pipeline/runs.py and pipeline/events.py."""

from __future__ import annotations

import pytest

from conveyor.core.models import BlockStatus, JobStatus, PipelineStatus, TriggerEvent
from conveyor.pipeline.events import PipelineCompleted
from conveyor.pipeline.runs import BlockRun, JobRun, PipelineRun


def _block(*statuses: JobStatus) -> BlockRun:
    return BlockRun(
        name="Test",
        jobs=[JobRun(name=f"j{i}", status=s) for i, s in enumerate(statuses)],
    )


class TestDeriveBlockStatus:
    def test_all_passed(self):
        assert _block(JobStatus.PASSED, JobStatus.PASSED).derive_status() == BlockStatus.PASSED

    def test_any_failed(self):
        assert _block(JobStatus.PASSED, JobStatus.FAILED).derive_status() == BlockStatus.FAILED

    def test_timed_out_is_failure(self):
        assert _block(JobStatus.TIMED_OUT).derive_status() == BlockStatus.FAILED

    def test_stopped(self):
        block = _block(JobStatus.STOPPED, JobStatus.PASSED)
        assert block.derive_status(stop_requested=True) == BlockStatus.STOPPED

    def test_failure_wins_over_stop(self):
        block = _block(JobStatus.FAILED, JobStatus.STOPPED)
        assert block.derive_status(stop_requested=True) == BlockStatus.FAILED

    def test_job_lookup(self):
        block = _block(JobStatus.PASSED)
        assert block.job("j0").status == JobStatus.PASSED
        with pytest.raises(KeyError):
            block.job("missing")


class TestPipelineRun:
    def test_from_definition(self, make_definition, simple_pipeline):
        definition = make_definition(simple_pipeline(
            "ci", ("Build", {"compile": ["true"]}), ("Test", {"unit": ["true"], "lint": ["true"]}),
        ))
        trigger = TriggerEvent(branch="master", commit_sha="abc123")
        run = PipelineRun.from_definition(definition, trigger, workflow_id="wf-1")

        assert run.definition == "ci"
        assert run.status == PipelineStatus.PENDING
        assert [b.name for b in run.blocks] == ["Build", "Test"]
        assert [j.name for j in run.block("Test").jobs] == ["unit", "lint"]
        assert run.branch == "master"
        assert run.commit_sha == "abc123"
        assert run.duration_seconds is None

    def test_json_round_trip_keeps_output(self, make_definition, simple_pipeline):
        definition = make_definition(simple_pipeline("ci", ("Build", {"compile": ["true"]})))
        run = PipelineRun.from_definition(
            definition, TriggerEvent(branch="m", commit_sha="c"), workflow_id="wf",
        )
        run.block("Build").job("compile").output.append("$ true")
        restored = PipelineRun.model_validate_json(run.model_dump_json())
        assert restored.block("Build").job("compile").output == ["$ true"]


class TestPipelineCompleted:
    def _run(self, status: PipelineStatus) -> PipelineRun:
        return PipelineRun(
            definition="ci",
            workflow_id="wf-1",
            trigger=TriggerEvent(branch="master", commit_sha="abc"),
            status=status,
        )

    def test_from_finished_run(self):
        event = PipelineCompleted.from_run(self._run(PipelineStatus.PASSED))
        assert event.status == PipelineStatus.PASSED
        assert event.branch == "master"
        assert event.workflow_id == "wf-1"
        assert event.definition == "ci"

    def test_unfinished_run_rejected(self):
        with pytest.raises(ValueError, match="not finished"):
            PipelineCompleted.from_run(self._run(PipelineStatus.RUNNING))
