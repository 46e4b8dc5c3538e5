"""Runs one pipeline job through every stage and records the outcome.

Each stage runs in its own unit of work: the stage's writes and its state
transition commit together, so a crash mid-run leaves the run at the last
completed stage. Stage failures are recorded on the run and reported to the
triggering user; they never propagate to the worker.
"""

from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from legal_intel.core.exceptions import AppError, InvalidTransitionError, StageError
from legal_intel.pipeline.enums import PipelineStage, RunStatus, StageStatus
from legal_intel.pipeline.stages.base import BaseStage, PipelineJob, StageContext, StageResult
from legal_intel.pipeline.state_machine import (
    RunCompleted,
    RunState,
    StageCompleted,
    StageFailed,
    StageSkipped,
    StageStarted,
    transition,
)
from legal_intel.services.risk_service import recalculate_matter_risk
from legal_intel.services.taxonomy.resolver import DatabaseTaxonomyResolver, TaxonomyResolver
from legal_intel.utils.logging import get_logger

LOGGER = get_logger(__name__)

FAILURE_NOTIFICATION_TITLE = "Document pipeline failed"
FAILURE_NOTIFICATION_BODY = (
    "A pipeline stage encountered an error. Check the pipeline tab for details."
)
COMPLETION_NOTIFICATION_TITLE = "Document pipeline completed"

_TERMINAL_STATUSES = (RunStatus.COMPLETED.value, RunStatus.FAILED.value)


def default_resolver_factory(uow) -> TaxonomyResolver:
    return DatabaseTaxonomyResolver(uow.taxonomy, uow.matters)


class PipelineOrchestrator:
    """Drives a run through the stage sequence.

    Args:
        uow_factory: ``tenant_id -> UnitOfWork``
        stages: One stage implementation per PipelineStage, in order
        resolver_factory: Builds a taxonomy resolver over an open unit of work
    """

    def __init__(
        self,
        uow_factory: Callable,
        stages: Sequence[BaseStage],
        resolver_factory: Callable = default_resolver_factory,
    ):
        self.uow_factory = uow_factory
        self.stages: List[BaseStage] = list(stages)
        self.resolver_factory = resolver_factory

    async def run(self, job: PipelineJob) -> RunStatus:
        """Execute a job. Always returns the run's final status; never raises."""
        ctx = StageContext(job=job)
        stage = None
        try:
            for stage in self.stages:
                await self._start_stage(ctx, stage)
                await self._execute_stage(ctx, stage)
            stage = None
            await self._complete_run(ctx)
            return RunStatus.COMPLETED
        except InvalidTransitionError as e:
            # Duplicate delivery or a run already finished elsewhere.
            LOGGER.warning(
                f"Run {job.run_id} not advanced: {e}",
                extra={"run_id": str(job.run_id)},
            )
            return await self._current_status(job)
        except StageError as e:
            await self._fail_run(job, e.stage, e.message, e)
            return RunStatus.FAILED
        except Exception as e:
            stage_name = stage.name.value if stage is not None else None
            await self._fail_run(job, stage_name, str(e) or type(e).__name__, e)
            return RunStatus.FAILED

    async def _load(self, uow, ctx: StageContext):
        run = await uow.runs.get_by_id(ctx.job.run_id)
        if run is None:
            raise StageError("intake", f"Pipeline run {ctx.job.run_id} not found")
        ctx.uow = uow
        ctx.run = run
        ctx.document = await uow.documents.get_by_id(ctx.job.document_id)
        ctx.resolver = self.resolver_factory(uow)
        return run

    @staticmethod
    def _apply(run, event) -> RunState:
        state = RunState.from_record(run.status, run.current_stage, run.stage_statuses)
        state = transition(state, event)
        run.status = state.status.value
        run.current_stage = state.current_stage.value if state.current_stage else None
        run.stage_statuses = state.to_record()
        run.updated_at = datetime.now(timezone.utc)
        return state

    async def _start_stage(self, ctx: StageContext, stage: BaseStage) -> None:
        async with self.uow_factory(ctx.job.tenant_id) as uow:
            run = await self._load(uow, ctx)
            if run.started_at is None:
                run.started_at = datetime.now(timezone.utc)
            self._apply(run, StageStarted(stage.name))
        LOGGER.info(
            f"Stage {stage.name.value} started",
            extra={"run_id": str(ctx.job.run_id), "stage": stage.name.value},
        )

    async def _execute_stage(self, ctx: StageContext, stage: BaseStage) -> None:
        async with self.uow_factory(ctx.job.tenant_id) as uow:
            run = await self._load(uow, ctx)
            result: StageResult = await stage.execute(ctx)

            if result.status == StageStatus.SKIPPED:
                self._apply(run, StageSkipped(stage.name, result.error))
            else:
                self._apply(run, StageCompleted(stage.name))

            await uow.runs.add_counts(
                run,
                findings=result.findings_count,
                actions=result.actions_count,
                tokens=result.tokens_used,
            )
            await uow.timeline.record(
                event_type="pipeline_stage_completed",
                title=f"Pipeline stage completed: {stage.name.value}",
                matter_id=run.matter_id,
                metadata={
                    "stage": stage.name.value,
                    "runId": str(run.id),
                    "status": result.status.value,
                    "reason": result.error,
                },
            )
        LOGGER.info(
            f"Stage {stage.name.value} {result.status.value}",
            extra={"run_id": str(ctx.job.run_id), "data": result.data},
        )

    async def _complete_run(self, ctx: StageContext) -> None:
        async with self.uow_factory(ctx.job.tenant_id) as uow:
            run = await self._load(uow, ctx)
            self._apply(run, RunCompleted())
            run.completed_at = datetime.now(timezone.utc)
            await uow.timeline.record(
                event_type="pipeline_completed",
                title="Document pipeline completed",
                matter_id=run.matter_id,
                metadata={
                    "runId": str(run.id),
                    "findingsCount": run.findings_count,
                    "actionsCount": run.actions_count,
                },
            )
            matter_id = run.matter_id
            triggered_by = run.triggered_by
            findings_count = run.findings_count
            actions_count = run.actions_count

        LOGGER.info(
            f"Pipeline run {ctx.job.run_id} completed",
            extra={"run_id": str(ctx.job.run_id), "findings": findings_count, "actions": actions_count},
        )

        if matter_id is not None:
            await self._recalculate_risk(ctx.job.tenant_id, matter_id)
        if triggered_by is not None:
            await self._notify(
                ctx.job,
                triggered_by,
                COMPLETION_NOTIFICATION_TITLE,
                f"{findings_count} findings extracted, {actions_count} actions proposed.",
            )

    async def _fail_run(
        self, job: PipelineJob, stage: Optional[str], error: str, exc: Exception
    ) -> None:
        LOGGER.error(
            f"Pipeline run {job.run_id} failed at stage {stage}: {error}",
            exc_info=exc,
            extra={"run_id": str(job.run_id), "stage": stage},
        )
        triggered_by = None
        try:
            async with self.uow_factory(job.tenant_id) as uow:
                run = await uow.runs.get_by_id(job.run_id)
                if run is None:
                    return
                if run.status in _TERMINAL_STATUSES:
                    LOGGER.warning(
                        f"Run {job.run_id} is already {run.status}; failure not recorded",
                        extra={"run_id": str(job.run_id)},
                    )
                    return
                triggered_by = run.triggered_by
                if stage is None:
                    run.status = RunStatus.FAILED.value
                else:
                    try:
                        self._apply(run, StageFailed(PipelineStage(stage), error))
                    except (InvalidTransitionError, ValueError):
                        run.status = RunStatus.FAILED.value
                run.error = error
                run.completed_at = datetime.now(timezone.utc)
                await uow.timeline.record(
                    event_type="pipeline_failed",
                    title=f"Pipeline failed at stage: {stage or 'unknown'}",
                    matter_id=run.matter_id,
                    metadata={"stage": stage, "runId": str(run.id)},
                )
        except Exception:
            LOGGER.error(f"Could not record failure for run {job.run_id}", exc_info=True)
            return

        if triggered_by is not None:
            await self._notify(job, triggered_by, FAILURE_NOTIFICATION_TITLE, FAILURE_NOTIFICATION_BODY)

    async def _recalculate_risk(self, tenant_id: UUID, matter_id: UUID) -> None:
        try:
            async with self.uow_factory(tenant_id) as uow:
                await recalculate_matter_risk(uow, matter_id)
        except Exception:
            LOGGER.error(f"Risk recalculation failed for matter {matter_id}", exc_info=True)

    async def _notify(self, job: PipelineJob, user_id: UUID, title: str, body: str) -> None:
        try:
            async with self.uow_factory(job.tenant_id) as uow:
                await uow.notifications.notify(
                    user_id=user_id,
                    title=title,
                    body=body,
                    type="system",
                    entity_type="pipeline_run",
                    entity_id=job.run_id,
                )
        except Exception:
            LOGGER.error(f"Could not notify user {user_id} about run {job.run_id}", exc_info=True)

    async def _current_status(self, job: PipelineJob) -> RunStatus:
        try:
            async with self.uow_factory(job.tenant_id) as uow:
                run = await uow.runs.get_by_id(job.run_id)
                return RunStatus(run.status) if run is not None else RunStatus.FAILED
        except (SQLAlchemyError, AppError):
            LOGGER.error(f"Could not read status of run {job.run_id}", exc_info=True)
            return RunStatus.FAILED
