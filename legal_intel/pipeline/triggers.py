"""Deterministic action triggers evaluated against a run's findings.

A trigger condition looks like::

    {"fieldKey": "statute_of_limitation_date", "categoryKey": "dates",
     "operator": "date_within_days", "value": 90}

Operators: exists, equals, contains, gt, lt, date_within_days.
"""

import math
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from legal_intel.services.taxonomy.pack import ActionTrigger, field_map_key
from legal_intel.utils.dates import parse_datetime
from legal_intel.utils.logging import get_logger

LOGGER = get_logger(__name__)

OPERATORS = ("exists", "equals", "contains", "gt", "lt", "date_within_days")
_NUMBER_STRIP_RE = re.compile(r"[,$%]")


@dataclass(frozen=True)
class FindingRef:
    value: str
    confidence: float
    finding_id: Optional[UUID] = None


@dataclass(frozen=True)
class TriggerMatch:
    trigger: ActionTrigger
    finding: FindingRef


def build_findings_index(findings: Iterable[Any]) -> Dict[str, List[FindingRef]]:
    """Index findings by ``"<categoryKey>:<fieldKey>"`` and by bare field key."""
    index: Dict[str, List[FindingRef]] = {}
    for f in findings:
        ref = FindingRef(
            value=f.value or "",
            confidence=float(f.confidence),
            finding_id=getattr(f, "id", None),
        )
        for key in (field_map_key(f.category_key, f.field_key), f.field_key):
            index.setdefault(key, []).append(ref)
    return index


def _to_number(value: Any) -> Optional[float]:
    try:
        number = float(_NUMBER_STRIP_RE.sub("", str(value)).strip())
    except ValueError:
        return None
    return None if math.isnan(number) else number


def _matches(operator: str, finding: FindingRef, expected: Any, now: datetime) -> bool:
    if operator == "exists":
        return True
    if operator == "equals":
        return finding.value == str(expected)
    if operator == "contains":
        return str(expected if expected is not None else "").lower() in finding.value.lower()
    if operator in ("gt", "lt"):
        actual = _to_number(finding.value)
        limit = _to_number(expected)
        if actual is None or limit is None:
            return False
        return actual > limit if operator == "gt" else actual < limit
    if operator == "date_within_days":
        when = parse_datetime(finding.value)
        days = _to_number(expected)
        if when is None or days is None:
            return False
        diff_days = math.ceil((when - now).total_seconds() / 86400)
        return 0 <= diff_days <= days
    return False


def evaluate_trigger(
    condition: Dict[str, Any],
    findings_index: Dict[str, List[FindingRef]],
    now: Optional[datetime] = None,
) -> Optional[FindingRef]:
    """Return the first finding satisfying a condition, or None.

    Looks up ``categoryKey:fieldKey`` first, then the bare field key.
    """
    field_key = condition.get("fieldKey")
    operator = condition.get("operator")
    if not field_key or operator not in OPERATORS:
        return None

    category_key = condition.get("categoryKey")
    key = field_map_key(category_key, field_key) if category_key else field_key
    candidates = findings_index.get(key) or findings_index.get(field_key) or []

    now = now or datetime.now(timezone.utc)
    for finding in candidates:
        if _matches(operator, finding, condition.get("value"), now):
            return finding
    return None


def process_triggers(
    triggers: Iterable[ActionTrigger],
    findings_index: Dict[str, List[FindingRef]],
    now: Optional[datetime] = None,
) -> List[TriggerMatch]:
    matched = []
    for trigger in triggers:
        condition = trigger.trigger_condition or {}
        if condition.get("operator") not in OPERATORS:
            LOGGER.warning(f"Skipping trigger '{trigger.name}' with unsupported condition {condition}")
            continue
        finding = evaluate_trigger(condition, findings_index, now)
        if finding is not None:
            matched.append(TriggerMatch(trigger=trigger, finding=finding))
    return matched
