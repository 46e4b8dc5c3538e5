"""Turns a run's findings and the pack's triggers into proposed actions.

Nothing proposed here has a side effect; every action waits for a human.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from legal_intel.pipeline.enums import ActionType, FindingImpact, FindingStatus
from legal_intel.pipeline.triggers import build_findings_index, process_triggers
from legal_intel.services.taxonomy.pack import LoadedPack

IMPACT_PRIORITY = {
    FindingImpact.CRITICAL.value: 0,
    FindingImpact.HIGH.value: 1,
}
DEFAULT_PRIORITY = 2


@dataclass
class ActionProposal:
    action_type: ActionType
    title: str
    priority: int
    is_deterministic: bool = True
    description: Optional[str] = None
    payload: Optional[Dict[str, Any]] = None
    trigger_finding_id: Optional[UUID] = None
    trigger_rule_id: Optional[UUID] = None
    covered_finding_ids: List[UUID] = field(default_factory=list)

    def to_row(self) -> Dict[str, Any]:
        return {
            "action_type": self.action_type.value,
            "title": self.title,
            "description": self.description,
            "priority": self.priority,
            "is_deterministic": self.is_deterministic,
            "action_payload": self.payload,
            "trigger_finding_id": self.trigger_finding_id,
            "trigger_rule_id": self.trigger_rule_id,
        }


def _action_type(value: Any) -> ActionType:
    try:
        return ActionType(value)
    except ValueError:
        return ActionType.AI_RECOMMENDATION


def _str(value: Any) -> str:
    return value.value if hasattr(value, "value") else str(value)


def trigger_proposals(
    findings: List[Any], pack: Optional[LoadedPack], now: Optional[datetime] = None
) -> List[ActionProposal]:
    if pack is None or not pack.action_triggers:
        return []

    proposals = []
    for match in process_triggers(pack.action_triggers, build_findings_index(findings), now):
        template = match.trigger.action_template or {}
        proposals.append(
            ActionProposal(
                action_type=_action_type(template.get("actionType")),
                title=template.get("title") or match.trigger.name,
                description=template.get("description") or match.trigger.description,
                priority=int(template.get("priority", 0)),
                payload=template.get("payload"),
                trigger_finding_id=match.finding.finding_id,
                trigger_rule_id=match.trigger.id,
                covered_finding_ids=[match.finding.finding_id] if match.finding.finding_id else [],
            )
        )
    return proposals


def conflict_proposals(findings: List[Any]) -> List[ActionProposal]:
    """One flag_risk per finding that disagrees with a known value."""
    proposals = []
    for f in findings:
        if _str(f.status) != FindingStatus.CONFLICT.value:
            continue
        proposals.append(
            ActionProposal(
                action_type=ActionType.FLAG_RISK,
                title=f"Data conflict: {f.label}",
                description=(
                    f'Extracted "{f.value}" conflicts with existing value '
                    f'"{f.existing_value}". Review required.'
                ),
                priority=IMPACT_PRIORITY.get(_str(f.impact), DEFAULT_PRIORITY),
                payload={
                    "findingId": str(f.id) if f.id else None,
                    "fieldKey": f.field_key,
                    "categoryKey": f.category_key,
                    "newValue": f.value,
                    "existingValue": f.existing_value,
                },
                trigger_finding_id=f.id,
                covered_finding_ids=[f.id] if f.id else [],
            )
        )
    return proposals


def critical_review_proposal(findings: List[Any]) -> Optional[ActionProposal]:
    """A single request_review covering every critical pending finding."""
    critical = [
        f for f in findings
        if _str(f.status) == FindingStatus.PENDING.value and _str(f.impact) == FindingImpact.CRITICAL.value
    ]
    if not critical:
        return None
    return ActionProposal(
        action_type=ActionType.REQUEST_REVIEW,
        title=f"{len(critical)} critical finding(s) need review",
        description=(
            f"Critical findings extracted: {', '.join(f.label for f in critical)}. "
            "Manual review recommended."
        ),
        priority=0,
        payload={"findingIds": [str(f.id) for f in critical if f.id]},
        trigger_finding_id=critical[0].id,
        covered_finding_ids=[f.id for f in critical if f.id],
    )


def recommendation_proposals(findings: List[Any], covered: Iterable[UUID]) -> List[ActionProposal]:
    """Suggest verifying high-impact pending findings nothing else addressed.

    These come from model output rather than a configured rule, so they are
    marked non-deterministic.
    """
    covered = set(covered)
    proposals = []
    for f in findings:
        if _str(f.status) != FindingStatus.PENDING.value or _str(f.impact) != FindingImpact.HIGH.value:
            continue
        if f.id in covered:
            continue
        proposals.append(
            ActionProposal(
                action_type=ActionType.AI_RECOMMENDATION,
                title=f"Verify {f.label}",
                description=(
                    f'The pipeline extracted "{f.value}" for {f.label} '
                    f"(confidence {float(f.confidence):.0%}). Confirm against the source document."
                ),
                priority=1,
                is_deterministic=False,
                payload={
                    "findingId": str(f.id) if f.id else None,
                    "fieldKey": f.field_key,
                    "categoryKey": f.category_key,
                    "sourceQuote": f.source_quote,
                },
                trigger_finding_id=f.id,
            )
        )
    return proposals


def propose_actions(
    findings: List[Any], pack: Optional[LoadedPack], now: Optional[datetime] = None
) -> List[ActionProposal]:
    """All proposals for a run, deterministic first.

    Args:
        findings: The run's stored findings
        pack: Taxonomy pack used for the run, if any
        now: Reference time for date_within_days triggers
    """
    proposals = trigger_proposals(findings, pack, now)
    proposals.extend(conflict_proposals(findings))

    review = critical_review_proposal(findings)
    if review is not None:
        proposals.append(review)

    covered = [fid for p in proposals for fid in p.covered_finding_ids]
    proposals.extend(recommendation_proposals(findings, covered))
    return proposals
