"""Proposes follow-up actions for a run. Nothing here executes them."""

from legal_intel.pipeline.action_proposals import propose_actions
from legal_intel.pipeline.enums import ActionStatus, ExecutionStatus, PipelineStage
from legal_intel.pipeline.stages.base import BaseStage, StageContext, StageResult
from legal_intel.utils.logging import get_logger

LOGGER = get_logger(__name__)


class ActionsStage(BaseStage):

    @property
    def name(self) -> PipelineStage:
        return PipelineStage.ACTIONS

    async def execute(self, ctx: StageContext) -> StageResult:
        run = ctx.run
        findings = await ctx.uow.findings.list_for_run(run.id)
        if not findings:
            return StageResult.skipped("No findings to act on")

        pack = await self.pack_for(ctx)
        proposals = propose_actions(findings, pack)

        rows = []
        for proposal in proposals:
            row = proposal.to_row()
            row.update(
                pipeline_run_id=run.id,
                matter_id=run.matter_id,
                status=ActionStatus.PENDING.value,
                execution_status=ExecutionStatus.NOT_EXECUTED.value,
            )
            rows.append(row)
        if rows:
            await ctx.uow.actions.create_many(rows)

        deterministic = sum(1 for p in proposals if p.is_deterministic)
        LOGGER.info(
            f"Proposed {len(rows)} actions for run {run.id}",
            extra={"run_id": str(run.id), "deterministic": deterministic},
        )
        return StageResult.completed(
            data={"proposed": len(rows), "deterministic": deterministic},
            actions_count=len(rows),
        )
