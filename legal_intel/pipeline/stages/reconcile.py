"""Reconciliation of a run's findings against what the matter already holds."""

from legal_intel.core.config import settings
from legal_intel.pipeline.enums import FindingStatus, PipelineStage
from legal_intel.pipeline.reconciliation import build_existing_value_map, reconcile_finding
from legal_intel.pipeline.stages.base import BaseStage, StageContext, StageResult
from legal_intel.services.taxonomy.pack import field_map_key
from legal_intel.utils.logging import get_logger

LOGGER = get_logger(__name__)


class ReconcileStage(BaseStage):
    """Sets each new finding to auto_applied, pending or conflict.

    Findings are visited most confident first. A value auto-applied earlier in
    the same run becomes the known value for later findings of that field, so
    two disagreeing values from one document surface as a conflict.
    """

    def __init__(self, default_threshold: float = None):
        self.default_threshold = (
            default_threshold
            if default_threshold is not None
            else settings.pipeline.default_auto_apply_threshold
        )

    @property
    def name(self) -> PipelineStage:
        return PipelineStage.RECONCILE

    async def execute(self, ctx: StageContext) -> StageResult:
        run = ctx.run
        if run.matter_id is None:
            return StageResult.skipped("Document is not attached to a matter")

        findings = await ctx.uow.findings.list_for_run(run.id)
        if not findings:
            return StageResult.completed(data={"reconciled": 0})

        pack = await self.pack_for(ctx)
        rules = pack.reconciliation_rule_map if pack is not None else {}

        prior = await ctx.uow.findings.list_for_matter(
            run.matter_id,
            statuses=(FindingStatus.ACCEPTED.value, FindingStatus.AUTO_APPLIED.value),
            exclude_run_id=run.id,
        )
        corrections = await ctx.uow.corrections.list_applicable(run.matter_id)
        known = build_existing_value_map(prior, corrections)

        counts = {s.value: 0 for s in (FindingStatus.AUTO_APPLIED, FindingStatus.PENDING, FindingStatus.CONFLICT)}
        for finding in sorted(findings, key=lambda f: f.confidence, reverse=True):
            key = field_map_key(finding.category_key, finding.field_key)
            result = reconcile_finding(
                finding.value,
                known.get(key),
                finding.confidence,
                rule=rules.get(finding.field_key),
                default_threshold=self.default_threshold,
            )
            finding.status = result.status.value
            finding.existing_value = result.existing_value
            if result.status == FindingStatus.AUTO_APPLIED:
                known.setdefault(key, finding.value)
            counts[result.status.value] += 1

        await ctx.uow.session.flush()
        LOGGER.info(
            f"Reconciled {len(findings)} findings for run {run.id}",
            extra={"run_id": str(run.id), **counts},
        )
        return StageResult.completed(data={"reconciled": len(findings), **counts})
