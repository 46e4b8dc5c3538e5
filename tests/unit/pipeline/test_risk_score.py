"""Unit tests for the matter risk score."""

import pytest

from legal_intel.pipeline.risk_score import calculate_risk_score


class TestRiskScore:

    def test_no_findings_scores_zero(self):
        result = calculate_risk_score([])
        assert result.score == 0
        assert result.factors == []

    def test_only_eligible_statuses_count(self, finding_factory):
        findings = [
            finding_factory(status="rejected", impact="critical", confidence=1.0),
            finding_factory(status="revised", impact="critical", confidence=1.0),
            finding_factory(status="conflict", impact="high", confidence=1.0),
        ]
        assert calculate_risk_score(findings).score == 0

    def test_critical_pending_finding(self, finding_factory):
        result = calculate_risk_score([finding_factory(impact="critical", confidence=1.0)])

        # 15 for the critical tier plus 2 for one pending finding
        assert result.score == 17
        assert [f.key for f in result.factors] == ["critical_findings", "unresolved_pending"]

    def test_tier_contribution_is_capped(self, finding_factory):
        findings = [
            finding_factory(impact="critical", confidence=1.0, status="accepted") for _ in range(5)
        ]
        result = calculate_risk_score(findings)

        assert result.score == 40
        assert result.factors[0].contribution == 40
        assert result.factors[0].detail == "5 critical findings"

    def test_score_is_clamped_and_only_top_three_factors_shown(self, finding_factory):
        findings = []
        for impact in ("critical", "high", "medium", "low"):
            findings.extend(finding_factory(impact=impact, confidence=1.0) for _ in range(10))

        result = calculate_risk_score(findings)

        assert result.score == 100
        assert len(result.factors) == 3
        assert [f.key for f in result.factors[:2]] == ["critical_findings", "high_findings"]

    def test_score_grows_with_confidence(self, finding_factory):
        low = calculate_risk_score([finding_factory(impact="high", confidence=0.3, status="accepted")])
        high = calculate_risk_score([finding_factory(impact="high", confidence=0.9, status="accepted")])
        assert high.score > low.score

    def test_auto_applied_counts_but_adds_no_pending_factor(self, finding_factory):
        result = calculate_risk_score([finding_factory(impact="medium", confidence=1.0, status="auto_applied")])
        assert result.score == 3
        assert [f.key for f in result.factors] == ["medium_findings"]

    @pytest.mark.parametrize("impact", ["critical", "high"])
    @pytest.mark.parametrize("status", ["pending", "accepted"])
    def test_score_never_drops_as_findings_are_added(self, finding_factory, impact, status):
        baseline = [finding_factory(impact="medium", confidence=0.7, status="accepted")]
        scores = []
        for count in range(9):
            extra = [finding_factory(impact=impact, confidence=0.8, status=status) for _ in range(count)]
            scores.append(calculate_risk_score(baseline + extra).score)

        assert scores == sorted(scores)
        assert scores[-1] > scores[0]
