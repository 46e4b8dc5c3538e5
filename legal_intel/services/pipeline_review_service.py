"""Human review of pipeline output: findings, actions, runs and risk.

Every public method opens one tenant-scoped unit of work, so a caller can
only ever see or change rows of its own tenant.
"""

from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Protocol
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from legal_intel.core.exceptions import ActionExecutionError, AppError, NotFoundError, ValidationError
from legal_intel.pipeline.action_executor import ActionExecutor, ExecutionOutcome
from legal_intel.pipeline.enums import (
    ActionStatus,
    CorrectionScope,
    ExecutionStatus,
    FindingStatus,
    RunStatus,
)
from legal_intel.pipeline.risk_score import RiskResult
from legal_intel.pipeline.stages.base import PipelineJob
from legal_intel.pipeline.state_machine import initial_state
from legal_intel.services.risk_service import recalculate_matter_risk
from legal_intel.utils.logging import get_logger

LOGGER = get_logger(__name__)

PIPELINE_JOB_NAME = "document:extract"

OPEN_FINDING_STATUSES = (FindingStatus.PENDING.value, FindingStatus.CONFLICT.value)


class JobEnqueuer(Protocol):
    async def enqueue(self, job_name: str, payload: Dict[str, Any]) -> str:
        ...


class PipelineReviewService:
    """Service behind the pipeline review endpoints.

    Args:
        uow_factory: ``tenant_id -> UnitOfWork``
        enqueuer: Starts ``document:extract`` jobs; only needed by create_run
        executor: Runs side effects of accepted actions
    """

    def __init__(
        self,
        uow_factory: Callable,
        enqueuer: Optional[JobEnqueuer] = None,
        executor: Optional[ActionExecutor] = None,
    ):
        self.uow_factory = uow_factory
        self.enqueuer = enqueuer
        self.executor = executor or ActionExecutor()

    async def get_run(self, tenant_id: UUID, run_id: UUID) -> Dict[str, Any]:
        """Run with its findings and proposed actions.

        Raises:
            NotFoundError: If the run is not in the tenant
        """
        async with self.uow_factory(tenant_id) as uow:
            run = await uow.runs.get_by_id(run_id)
            if run is None:
                raise NotFoundError("Pipeline run not found")
            findings = await uow.findings.list_for_run(run_id)
            actions = await uow.actions.list_for_run(run_id)
            return {"run": run, "findings": findings, "actions": actions}

    async def resolve_finding(
        self,
        tenant_id: UUID,
        user_id: UUID,
        finding_id: UUID,
        status: str,
        corrected_value: Optional[str] = None,
        correction_scope: Optional[str] = None,
    ):
        """Accept, reject or revise a finding.

        A revision records an EntityCorrection so later runs reconcile against
        the corrected value. The matter's risk score is refreshed afterwards,
        best effort.

        Raises:
            NotFoundError: If the finding is not in the tenant
            ValidationError: If the finding is already resolved, or a revision
                lacks its corrected value or scope
        """
        status = FindingStatus(status)
        if status not in (FindingStatus.ACCEPTED, FindingStatus.REJECTED, FindingStatus.REVISED):
            raise ValidationError(f"Cannot resolve a finding to {status.value}")
        if status == FindingStatus.REVISED and (not corrected_value or not correction_scope):
            raise ValidationError("A revision requires correctedValue and correctionScope")

        async with self.uow_factory(tenant_id) as uow:
            finding = await uow.findings.get_by_id(finding_id)
            if finding is None:
                raise NotFoundError("Finding not found")
            if finding.status not in OPEN_FINDING_STATUSES:
                raise ValidationError(f"Finding is already {finding.status}")

            finding.status = status.value
            finding.resolved_by = user_id
            finding.resolved_at = datetime.now(timezone.utc)

            if status == FindingStatus.REVISED:
                scope = CorrectionScope(correction_scope)
                finding.corrected_value = corrected_value
                await uow.corrections.create(
                    matter_id=finding.matter_id,
                    finding_id=finding.id,
                    category_key=finding.category_key,
                    field_key=finding.field_key,
                    original_value=finding.value,
                    corrected_value=corrected_value,
                    scope=scope.value,
                    corrected_by=user_id,
                )
            await uow.session.flush()
            matter_id = finding.matter_id

        LOGGER.info(
            f"Finding {finding_id} resolved as {status.value}",
            extra={"finding_id": str(finding_id), "user_id": str(user_id)},
        )
        if matter_id is not None:
            await self._refresh_risk(tenant_id, matter_id)
        return finding

    async def resolve_action(
        self, tenant_id: UUID, user_id: UUID, action_id: UUID, status: str
    ) -> Dict[str, Any]:
        """Accept or dismiss a proposed action, executing it when accepted.

        The action row stays locked from the status check until commit, so
        two concurrent accepts execute the side effect once.

        Returns:
            ``{"action", "executed", "error"}``

        Raises:
            NotFoundError: If the action is not in the tenant
            ValidationError: If the action was already resolved
        """
        status = ActionStatus(status)
        if status == ActionStatus.PENDING:
            raise ValidationError("Cannot resolve an action to pending")

        outcome = ExecutionOutcome(executed=False)
        async with self.uow_factory(tenant_id) as uow:
            action = await uow.lock_action(action_id)
            if action is None:
                raise NotFoundError("Action not found")
            if action.status != ActionStatus.PENDING.value:
                raise ValidationError(f"Action is already {action.status}")

            action.status = status.value
            action.resolved_by = user_id
            action.resolved_at = datetime.now(timezone.utc)

            if (
                action.status == ActionStatus.ACCEPTED.value
                and action.execution_status == ExecutionStatus.NOT_EXECUTED.value
            ):
                outcome = await self._execute(uow, action, user_id)
                if outcome.executed:
                    action.execution_status = ExecutionStatus.EXECUTED.value
                    action.executed_at = datetime.now(timezone.utc)
                elif outcome.error:
                    action.execution_status = ExecutionStatus.FAILED.value
                    action.error = outcome.error
            await uow.session.flush()

        LOGGER.info(
            f"Action {action_id} {status.value}, executed={outcome.executed}",
            extra={"action_id": str(action_id), "user_id": str(user_id)},
        )
        return {"action": action, "executed": outcome.executed, "error": outcome.error}

    async def _execute(self, uow, action, user_id: UUID) -> ExecutionOutcome:
        """Run the side effect in a savepoint so a failed insert keeps the resolution."""
        try:
            async with uow.savepoint():
                return await self.executor.execute(uow, action, user_id)
        except SQLAlchemyError as e:
            error = ActionExecutionError(f"Failed to execute {action.action_type}", original_error=e)
            LOGGER.error(error.message, exc_info=True, extra={"action_id": str(action.id)})
            return ExecutionOutcome(executed=False, error=error.message)

    async def create_run(
        self,
        tenant_id: UUID,
        user_id: UUID,
        document_id: UUID,
        options: Optional[Dict[str, Any]] = None,
    ):
        """Create a queued run for a document and enqueue its job.

        Raises:
            NotFoundError: If the document is not in the tenant
            AppError: If the job could not be enqueued; the run is marked failed
        """
        async with self.uow_factory(tenant_id) as uow:
            document = await uow.documents.get_by_id(document_id)
            if document is None:
                raise NotFoundError("Document not found")
            run = await uow.runs.create_run(
                document_id=document.id,
                matter_id=document.matter_id,
                stage_statuses=initial_state().to_record(),
                triggered_by=user_id,
            )
            run_id = run.id

        job = PipelineJob(
            tenant_id=tenant_id, document_id=document_id, run_id=run_id, options=options or {}
        )
        try:
            await self.enqueuer.enqueue(PIPELINE_JOB_NAME, job.to_payload())
        except Exception as e:
            LOGGER.error(f"Failed to enqueue run {run_id}", exc_info=True)
            async with self.uow_factory(tenant_id) as uow:
                await uow.runs.update(
                    run_id,
                    status=RunStatus.FAILED.value,
                    error=f"Failed to enqueue job: {e}",
                    completed_at=datetime.now(timezone.utc),
                )
            raise AppError("Failed to enqueue pipeline run", original_error=e) from e

        LOGGER.info(f"Queued pipeline run {run_id} for document {document_id}")
        return run

    async def recalculate_risk(self, tenant_id: UUID, matter_id: UUID) -> RiskResult:
        """Recompute and store a matter's risk score.

        Raises:
            NotFoundError: If the matter is not in the tenant
        """
        async with self.uow_factory(tenant_id) as uow:
            result = await recalculate_matter_risk(uow, matter_id)
            if result is None:
                raise NotFoundError("Matter not found")
            return result

    async def _refresh_risk(self, tenant_id: UUID, matter_id: UUID) -> None:
        try:
            async with self.uow_factory(tenant_id) as uow:
                await recalculate_matter_risk(uow, matter_id)
        except (SQLAlchemyError, AppError):
            LOGGER.error(f"Risk recalculation failed for matter {matter_id}", exc_info=True)
