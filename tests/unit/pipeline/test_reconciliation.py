"""Unit tests for reconciling findings against known matter values."""

from types import SimpleNamespace

import pytest

from legal_intel.pipeline.enums import ConflictDetectionMode, FindingStatus
from legal_intel.pipeline.reconciliation import (
    build_existing_value_map,
    reconcile_finding,
    values_match,
)
from legal_intel.services.taxonomy.pack import ReconciliationRule


class TestValuesMatch:

    @pytest.mark.parametrize(
        "mode,a,b,expected",
        [
            (ConflictDetectionMode.EXACT, "Jane Doe", " Jane Doe ", True),
            (ConflictDetectionMode.EXACT, "Jane Doe", "jane doe", False),
            (ConflictDetectionMode.FUZZY_TEXT, "Jane  Doe.", "jane doe", True),
            (ConflictDetectionMode.FUZZY_TEXT, "Jane Doe", "John Doe", False),
            (ConflictDetectionMode.FUZZY_NUMBER, "$100,000", "100500", True),
            (ConflictDetectionMode.FUZZY_NUMBER, "$100,000", "102000", False),
            (ConflictDetectionMode.FUZZY_NUMBER, "unknown", "100", False),
            (ConflictDetectionMode.DATE_RANGE, "2024-03-01", "March 1, 2024", True),
            (ConflictDetectionMode.DATE_RANGE, "2024-03-01", "2024-03-02", False),
            (ConflictDetectionMode.DATE_RANGE, "someday", "2024-03-02", False),
            (ConflictDetectionMode.SEMANTIC, "Main St.", "main st", True),
        ],
    )
    def test_modes(self, mode, a, b, expected):
        assert values_match(a, b, mode) is expected


class TestReconcileFinding:

    def test_new_value_with_high_confidence_is_auto_applied(self):
        result = reconcile_finding("2024-03-01", None, 0.9)
        assert result.status == FindingStatus.AUTO_APPLIED
        assert result.existing_value is None

    def test_new_value_below_threshold_is_pending(self):
        assert reconcile_finding("2024-03-01", None, 0.7).status == FindingStatus.PENDING

    def test_rule_threshold_overrides_default(self):
        rule = ReconciliationRule(field_key="policy_limit", auto_apply_threshold=0.95)
        assert reconcile_finding("100000", None, 0.9, rule=rule).status == FindingStatus.PENDING

    def test_rule_requiring_review_never_auto_applies_new_values(self):
        rule = ReconciliationRule(field_key="policy_limit", requires_human_review=True)
        assert reconcile_finding("100000", None, 1.0, rule=rule).status == FindingStatus.PENDING

    def test_matching_known_value_is_auto_applied(self):
        rule = ReconciliationRule(
            field_key="incident_date", conflict_detection_mode=ConflictDetectionMode.DATE_RANGE
        )
        result = reconcile_finding("March 1, 2024", "2024-03-01", 0.5, rule=rule)

        assert result.status == FindingStatus.AUTO_APPLIED
        assert result.existing_value == "2024-03-01"

    def test_different_known_value_is_a_conflict(self):
        result = reconcile_finding("Jane Roe", "Jane Doe", 0.99)
        assert result.status == FindingStatus.CONFLICT
        assert result.existing_value == "Jane Doe"

    def test_default_mode_is_fuzzy_text(self):
        assert reconcile_finding("JANE DOE", "jane doe", 0.1).status == FindingStatus.AUTO_APPLIED


def test_existing_value_map_prefers_newest_and_corrections():
    prior = [
        SimpleNamespace(category_key="parties", field_key="claimant_name", value="Jane Doe", status="accepted"),
        SimpleNamespace(category_key="parties", field_key="claimant_name", value="J. Doe", status="auto_applied"),
        SimpleNamespace(category_key="dates", field_key="incident_date", value="2024-01-01", status="pending"),
    ]
    corrections = [
        SimpleNamespace(category_key="dates", field_key="incident_date", corrected_value="2024-01-02"),
        SimpleNamespace(category_key="dates", field_key="incident_date", corrected_value="2023-12-31"),
    ]

    values = build_existing_value_map(prior, corrections)

    assert values == {
        "parties:claimant_name": "Jane Doe",
        "dates:incident_date": "2024-01-02",
    }
