"""Reconciliation of new findings against values already known for a matter."""

import re
from dataclasses import dataclass
from typing import Iterable, Optional

from legal_intel.pipeline.enums import ConflictDetectionMode, FindingStatus
from legal_intel.services.taxonomy.pack import ReconciliationRule, field_map_key
from legal_intel.utils.dates import utc_day

DEFAULT_AUTO_APPLY_THRESHOLD = 0.85
NUMBER_TOLERANCE = 0.01

_TEXT_STRIP_RE = re.compile(r"[.,;:!?'\"()\-/\\]")
_NUMBER_STRIP_RE = re.compile(r"[,$%]")
_WHITESPACE_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class ReconciliationResult:
    status: FindingStatus
    existing_value: Optional[str]


def normalize_text(value: str) -> str:
    text = _TEXT_STRIP_RE.sub("", value.strip().lower())
    return _WHITESPACE_RE.sub(" ", text)


def _parse_number(value: str) -> Optional[float]:
    try:
        return float(_NUMBER_STRIP_RE.sub("", value).strip())
    except ValueError:
        return None


def values_match(new_value: str, existing_value: str, mode: ConflictDetectionMode) -> bool:
    """Whether two values agree under a conflict detection mode.

    ``fuzzy_number`` accepts a 1% difference; ``date_range`` compares the UTC
    calendar day; ``semantic`` currently compares like ``fuzzy_text``.
    """
    mode = ConflictDetectionMode(mode)

    if mode == ConflictDetectionMode.EXACT:
        return new_value.strip() == existing_value.strip()

    if mode in (ConflictDetectionMode.FUZZY_TEXT, ConflictDetectionMode.SEMANTIC):
        return normalize_text(new_value) == normalize_text(existing_value)

    if mode == ConflictDetectionMode.FUZZY_NUMBER:
        a = _parse_number(new_value)
        b = _parse_number(existing_value)
        if a is None or b is None:
            return False
        return abs(a - b) <= max(abs(a), abs(b)) * NUMBER_TOLERANCE

    if mode == ConflictDetectionMode.DATE_RANGE:
        day_a = utc_day(new_value)
        day_b = utc_day(existing_value)
        if day_a is None or day_b is None:
            return False
        return day_a == day_b

    return new_value.strip() == existing_value.strip()


def reconcile_finding(
    value: str,
    existing_value: Optional[str],
    confidence: float,
    rule: Optional[ReconciliationRule] = None,
    default_threshold: float = DEFAULT_AUTO_APPLY_THRESHOLD,
) -> ReconciliationResult:
    """Decide a new finding's status.

    - nothing known yet: auto_applied when confident enough and the rule does
      not demand review, otherwise pending
    - known and matching: auto_applied
    - known and different: conflict
    """
    if not existing_value:
        threshold = (
            rule.auto_apply_threshold
            if rule is not None and rule.auto_apply_threshold is not None
            else default_threshold
        )
        requires_review = rule.requires_human_review if rule is not None else False
        if not requires_review and confidence >= threshold:
            return ReconciliationResult(FindingStatus.AUTO_APPLIED, None)
        return ReconciliationResult(FindingStatus.PENDING, None)

    mode = rule.conflict_detection_mode if rule is not None else ConflictDetectionMode.FUZZY_TEXT
    if values_match(value, existing_value, mode):
        return ReconciliationResult(FindingStatus.AUTO_APPLIED, existing_value)
    return ReconciliationResult(FindingStatus.CONFLICT, existing_value)


def build_existing_value_map(prior_findings: Iterable, corrections: Iterable = ()) -> dict:
    """Map ``"<categoryKey>:<fieldKey>"`` to the value currently held for a matter.

    ``prior_findings`` must be newest first; the newest accepted or
    auto-applied value wins. Corrections (also newest first) override findings.
    """
    values = {}
    for finding in prior_findings:
        if finding.status not in (FindingStatus.ACCEPTED.value, FindingStatus.AUTO_APPLIED.value):
            continue
        if not finding.value:
            continue
        values.setdefault(field_map_key(finding.category_key, finding.field_key), finding.value)

    corrected = {}
    for correction in corrections:
        key = field_map_key(correction.category_key, correction.field_key)
        corrected.setdefault(key, correction.corrected_value)
    values.update(corrected)
    return values
