"""Unit tests for PipelineOrchestrator run bookkeeping."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest

from legal_intel.core.exceptions import StageError
from legal_intel.pipeline.enums import PipelineStage, RunStatus, STAGE_ORDER, StageStatus
from legal_intel.pipeline.orchestrator import (
    COMPLETION_NOTIFICATION_TITLE,
    FAILURE_NOTIFICATION_BODY,
    FAILURE_NOTIFICATION_TITLE,
    PipelineOrchestrator,
)
from legal_intel.pipeline.stages.base import BaseStage, PipelineJob, StageResult
from legal_intel.pipeline.state_machine import initial_state


class ScriptedStage(BaseStage):
    """Stage whose outcome is fixed by the test."""

    def __init__(self, stage, outcome=None):
        self._stage = stage
        self.outcome = outcome
        self.calls = 0

    @property
    def name(self):
        return self._stage

    async def execute(self, ctx):
        self.calls += 1
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome or StageResult.completed(findings_count=1)


def _stages(**outcomes):
    return [ScriptedStage(stage, outcomes.get(stage.value)) for stage in STAGE_ORDER]


@pytest.fixture
def job():
    return PipelineJob(tenant_id=uuid4(), document_id=uuid4(), run_id=uuid4())


@pytest.fixture
def run(job, fake_uow):
    run = SimpleNamespace(
        id=job.run_id,
        matter_id=None,
        document_id=job.document_id,
        status=RunStatus.QUEUED.value,
        current_stage=None,
        stage_statuses=initial_state().to_record(),
        started_at=None,
        completed_at=None,
        updated_at=None,
        error=None,
        triggered_by=uuid4(),
        findings_count=0,
        actions_count=0,
        taxonomy_pack_id=None,
    )
    fake_uow.runs.get_by_id.return_value = run
    fake_uow.documents.get_by_id.return_value = SimpleNamespace(id=job.document_id)
    return run


def _orchestrator(fake_uow, stages):
    return PipelineOrchestrator(fake_uow.factory, stages, resolver_factory=lambda uow: None)


class TestPipelineOrchestrator:

    @pytest.mark.asyncio
    async def test_successful_run_completes_every_stage(self, fake_uow, job, run):
        stages = _stages(classify=StageResult.skipped("No taxonomy pack for this matter"))

        status = await _orchestrator(fake_uow, stages).run(job)

        assert status == RunStatus.COMPLETED
        assert run.status == "completed"
        assert run.stage_statuses["classify"] == StageStatus.SKIPPED.value
        assert run.stage_statuses["actions"] == StageStatus.COMPLETED.value
        assert run.started_at is not None and run.completed_at is not None
        assert all(stage.calls == 1 for stage in stages)
        assert fake_uow.runs.add_counts.await_count == len(STAGE_ORDER)

        notification = fake_uow.notifications.notify.await_args.kwargs
        assert notification["title"] == COMPLETION_NOTIFICATION_TITLE
        assert notification["user_id"] == run.triggered_by
        assert notification["entity_id"] == job.run_id

    @pytest.mark.asyncio
    async def test_stage_error_fails_run_and_stops(self, fake_uow, job, run):
        stages = _stages(extract=StageError("extract", "All 3 chunks failed extraction"))

        status = await _orchestrator(fake_uow, stages).run(job)

        assert status == RunStatus.FAILED
        assert run.status == "failed"
        assert run.error == "All 3 chunks failed extraction"
        assert run.stage_statuses["extract"] == StageStatus.FAILED.value
        assert run.stage_statuses["reconcile"] == StageStatus.PENDING.value
        assert stages[-1].calls == 0

        failure_events = [
            c.kwargs for c in fake_uow.timeline.record.await_args_list
            if c.kwargs["event_type"] == "pipeline_failed"
        ]
        assert failure_events[0]["title"] == "Pipeline failed at stage: extract"

        notification = fake_uow.notifications.notify.await_args.kwargs
        assert notification["title"] == FAILURE_NOTIFICATION_TITLE
        assert notification["body"] == FAILURE_NOTIFICATION_BODY
        assert "chunks" not in notification["body"]

    @pytest.mark.asyncio
    async def test_unexpected_error_is_attributed_to_running_stage(self, fake_uow, job, run):
        stages = _stages(ocr=RuntimeError("disk on fire"))

        status = await _orchestrator(fake_uow, stages).run(job)

        assert status == RunStatus.FAILED
        assert run.stage_statuses["ocr"] == StageStatus.FAILED.value
        assert run.error == "disk on fire"

    @pytest.mark.asyncio
    async def test_terminal_run_is_left_alone(self, fake_uow, job, run):
        run.status = RunStatus.COMPLETED.value
        stages = _stages()

        status = await _orchestrator(fake_uow, stages).run(job)

        assert status == RunStatus.COMPLETED
        assert stages[0].calls == 0
        fake_uow.notifications.notify.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_run_fails_without_notification(self, fake_uow, job):
        fake_uow.runs.get_by_id.return_value = None

        status = await _orchestrator(fake_uow, _stages()).run(job)

        assert status == RunStatus.FAILED
        fake_uow.notifications.notify.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_completion_recalculates_matter_risk(self, fake_uow, job, run):
        run.matter_id = uuid4()

        with patch(
            "legal_intel.pipeline.orchestrator.recalculate_matter_risk", new_callable=AsyncMock
        ) as recalculate:
            await _orchestrator(fake_uow, _stages()).run(job)

        recalculate.assert_awaited_once_with(fake_uow, run.matter_id)

    @pytest.mark.asyncio
    async def test_notification_failure_does_not_change_outcome(self, fake_uow, job, run):
        from sqlalchemy.exc import OperationalError

        fake_uow.notifications.notify.side_effect = OperationalError("insert", {}, Exception("down"))

        status = await _orchestrator(fake_uow, _stages()).run(job)

        assert status == RunStatus.COMPLETED
        assert run.status == "completed"

    @pytest.mark.asyncio
    async def test_risk_recalculation_error_keeps_run_completed(self, fake_uow, job, run):
        run.matter_id = uuid4()

        with patch(
            "legal_intel.pipeline.orchestrator.recalculate_matter_risk",
            new_callable=AsyncMock,
            side_effect=ValueError("'bogus' is not a valid FindingImpact"),
        ):
            status = await _orchestrator(fake_uow, _stages()).run(job)

        assert status == RunStatus.COMPLETED
        assert run.status == "completed"
        assert run.error is None
        notification = fake_uow.notifications.notify.await_args.kwargs
        assert notification["title"] == COMPLETION_NOTIFICATION_TITLE

    @pytest.mark.asyncio
    async def test_notification_sink_error_never_escapes(self, fake_uow, job, run):
        fake_uow.notifications.notify.side_effect = ConnectionRefusedError("sink down")

        status = await _orchestrator(fake_uow, _stages()).run(job)

        assert status == RunStatus.COMPLETED
        assert run.status == "completed"

    @pytest.mark.asyncio
    async def test_failure_notification_error_never_escapes(self, fake_uow, job, run):
        fake_uow.notifications.notify.side_effect = ConnectionRefusedError("sink down")
        stages = _stages(extract=StageError("extract", "All 3 chunks failed extraction"))

        status = await _orchestrator(fake_uow, stages).run(job)

        assert status == RunStatus.FAILED
        assert run.status == "failed"

    @pytest.mark.asyncio
    async def test_failure_after_completion_does_not_overwrite_status(self, fake_uow, job, run):
        run.status = RunStatus.COMPLETED.value
        run.stage_statuses = {stage.value: StageStatus.COMPLETED.value for stage in STAGE_ORDER}

        await _orchestrator(fake_uow, _stages())._fail_run(job, None, "late error", ValueError("late error"))

        assert run.status == "completed"
        assert run.error is None
        fake_uow.timeline.record.assert_not_awaited()
        fake_uow.notifications.notify.assert_not_awaited()


def test_job_payload_round_trip():
    job = PipelineJob(tenant_id=uuid4(), document_id=uuid4(), run_id=uuid4(), options={"force": True})
    assert PipelineJob.from_payload(job.to_payload()) == job
