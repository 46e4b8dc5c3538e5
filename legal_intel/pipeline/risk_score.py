"""Matter-level composite risk score.

Policy:

- Only findings in {pending, accepted, auto_applied} count.
- Each impact tier contributes ``weight * sum(confidence)`` up to a tier cap:
  critical 15/40, high 8/25, medium 3/15, low 1/5 (weight/cap).
- Unresolved volume adds 2 per pending finding, capped at 15.
- Score is the rounded sum of every contribution, clamped to [0, 100].
- Factors are sorted by contribution, largest first; only the top 3 are
  returned for display. The score always includes every contribution.

Every term is non-negative and non-decreasing in both the number and the
confidence of eligible findings, so the score is monotonic in them.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, List

from legal_intel.pipeline.enums import FindingImpact, FindingStatus, RISK_ELIGIBLE_STATUSES

MAX_SCORE = 100
TOP_FACTORS = 3

TIER_POLICY = {
    FindingImpact.CRITICAL: (15.0, 40.0),
    FindingImpact.HIGH: (8.0, 25.0),
    FindingImpact.MEDIUM: (3.0, 15.0),
    FindingImpact.LOW: (1.0, 5.0),
}
PENDING_WEIGHT = 2.0
PENDING_CAP = 15.0

TIER_LABELS = {
    FindingImpact.CRITICAL: "Critical findings",
    FindingImpact.HIGH: "High-impact findings",
    FindingImpact.MEDIUM: "Medium-impact findings",
    FindingImpact.LOW: "Low-impact findings",
}


@dataclass
class RiskFactor:
    key: str
    label: str
    contribution: float
    detail: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class RiskResult:
    score: int
    factors: List[RiskFactor] = field(default_factory=list)


def _status(finding: Any) -> str:
    status = finding.status
    return status.value if isinstance(status, FindingStatus) else str(status)


def calculate_risk_score(findings: Iterable[Any]) -> RiskResult:
    """Score a matter from its stored findings.

    Args:
        findings: Objects exposing ``status``, ``impact`` and ``confidence``

    Returns:
        RiskResult with a 0..100 score and up to three factors
    """
    eligible_values = {s.value for s in RISK_ELIGIBLE_STATUSES}
    eligible = [f for f in findings if _status(f) in eligible_values]
    if not eligible:
        return RiskResult(score=0, factors=[])

    factors: List[RiskFactor] = []

    for impact, (weight, cap) in TIER_POLICY.items():
        tier = [f for f in eligible if FindingImpact(f.impact) == impact]
        if not tier:
            continue
        confidence_sum = sum(min(max(float(f.confidence), 0.0), 1.0) for f in tier)
        contribution = min(weight * confidence_sum, cap)
        if contribution <= 0:
            continue
        factors.append(
            RiskFactor(
                key=f"{impact.value}_findings",
                label=TIER_LABELS[impact],
                contribution=round(contribution, 2),
                detail=f"{len(tier)} {impact.value} finding{'s' if len(tier) != 1 else ''}",
            )
        )

    pending = sum(1 for f in eligible if _status(f) == FindingStatus.PENDING.value)
    if pending:
        factors.append(
            RiskFactor(
                key="unresolved_pending",
                label="Unresolved findings",
                contribution=round(min(PENDING_WEIGHT * pending, PENDING_CAP), 2),
                detail=f"{pending} finding{'s' if pending != 1 else ''} awaiting review",
            )
        )

    total = sum(f.contribution for f in factors)
    score = int(round(min(max(total, 0.0), MAX_SCORE)))

    factors.sort(key=lambda f: f.contribution, reverse=True)
    return RiskResult(score=score, factors=factors[:TOP_FACTORS])
