"""Recomputes and stores a matter's risk score from its findings."""

from typing import Optional
from uuid import UUID

from legal_intel.pipeline.enums import RISK_ELIGIBLE_STATUSES
from legal_intel.pipeline.risk_score import RiskResult, calculate_risk_score
from legal_intel.utils.logging import get_logger

LOGGER = get_logger(__name__)


async def recalculate_matter_risk(uow, matter_id: UUID) -> Optional[RiskResult]:
    """Score a matter from every eligible finding and persist the result.

    The score is a pure function of stored findings, so concurrent callers
    converge and the last write wins.

    Args:
        uow: Open unit of work for the matter's tenant
        matter_id: Matter to score

    Returns:
        RiskResult, or None when the matter is not in the tenant
    """
    findings = await uow.findings.list_for_matter(
        matter_id, statuses=[s.value for s in RISK_ELIGIBLE_STATUSES]
    )
    result = calculate_risk_score(findings)
    matter = await uow.matters.update_risk(
        matter_id, result.score, [factor.to_dict() for factor in result.factors]
    )
    if matter is None:
        LOGGER.warning(f"Matter {matter_id} not found while storing risk score")
        return None

    LOGGER.info(
        f"Matter {matter_id} risk score {result.score}",
        extra={"matter_id": str(matter_id), "eligible_findings": len(findings)},
    )
    return result
