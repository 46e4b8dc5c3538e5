"""Normalization, deduplication, labeling and severity of extracted findings."""

import math
import re
from dataclasses import dataclass, replace
from typing import Any, Dict, Iterable, List, Mapping, Optional

from legal_intel.core.exceptions import MalformedModelOutputError
from legal_intel.pipeline.enums import FindingImpact
from legal_intel.services.taxonomy.pack import FieldDefinition, field_map_key

DEFAULT_LOW_CONFIDENCE_THRESHOLD = 0.6

DEADLINE_KEYWORDS = (
    "statute",
    "limitation",
    "deadline",
    "filing_date",
    "incident_date",
    "injury_date",
    "accident_date",
    "hearing_date",
    "trial_date",
    "due_date",
)

PARTY_KEYWORDS = (
    "claimant",
    "defendant",
    "plaintiff",
    "respondent",
    "appellant",
    "petitioner",
    "insurer",
    "employer",
    "party",
)

_PUNCTUATION_RE = re.compile(r"[^\w\s]")
_WHITESPACE_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class RawFinding:
    """One finding as reported by the model, before labeling."""
    category_key: str
    field_key: str
    value: str
    confidence: float
    source_quote: Optional[str] = None
    char_start: Optional[int] = None
    char_end: Optional[int] = None

    @classmethod
    def from_payload(cls, item: Any) -> Optional["RawFinding"]:
        """Build from one element of the model's findings array.

        Returns None for an element with an empty value (nothing found).

        Raises:
            MalformedModelOutputError: If the element is not a finding object
        """
        if not isinstance(item, dict):
            raise MalformedModelOutputError(f"Finding must be an object, got {type(item).__name__}")

        category_key = item.get("categoryKey")
        field_key = item.get("fieldKey")
        if not isinstance(category_key, str) or not category_key or not isinstance(field_key, str) or not field_key:
            raise MalformedModelOutputError("Finding is missing categoryKey or fieldKey")

        value = item.get("value")
        if value is None or (isinstance(value, str) and not value.strip()):
            return None

        try:
            confidence = float(item.get("confidence", 0.0))
        except (TypeError, ValueError) as e:
            raise MalformedModelOutputError(
                f"Finding {category_key}.{field_key} has a non-numeric confidence", original_error=e
            ) from e

        if not math.isfinite(confidence):
            raise MalformedModelOutputError(
                f"Finding {category_key}.{field_key} has a non-finite confidence"
            )

        quote = item.get("sourceQuote")
        return cls(
            category_key=category_key,
            field_key=field_key,
            value=value.strip() if isinstance(value, str) else str(value),
            confidence=min(max(confidence, 0.0), 1.0),
            source_quote=quote if isinstance(quote, str) and quote else None,
        )


@dataclass(frozen=True)
class LabeledFinding:
    category_key: str
    field_key: str
    label: str
    value: str
    confidence: float
    impact: FindingImpact
    source_quote: Optional[str] = None
    char_start: Optional[int] = None
    char_end: Optional[int] = None


def normalize_value(value: Any) -> str:
    """Case, punctuation and whitespace insensitive form of a value."""
    text = str(value).lower()
    text = _PUNCTUATION_RE.sub("", text)
    return _WHITESPACE_RE.sub(" ", text).strip()


def deduplicate_findings(findings: Iterable[RawFinding]) -> List[RawFinding]:
    """Keep the highest-confidence finding per (category, field, normalized value).

    Distinct normalized values for the same field are all kept. Output keeps
    the order in which each group was first seen.
    """
    best: Dict[tuple, RawFinding] = {}
    for finding in findings:
        key = (finding.category_key, finding.field_key, normalize_value(finding.value))
        current = best.get(key)
        if current is None or finding.confidence > current.confidence:
            best[key] = finding
    return list(best.values())


def _has_keyword(field_key: str, keywords: Iterable[str]) -> bool:
    key = field_key.lower()
    return any(keyword in key for keyword in keywords)


def classify_impact(
    finding: RawFinding,
    field: Optional[FieldDefinition] = None,
    low_confidence_threshold: float = DEFAULT_LOW_CONFIDENCE_THRESHOLD,
) -> FindingImpact:
    """Severity tier of a finding.

    requires_human_review forces HIGH, as does low confidence. Otherwise
    deadline-like fields are CRITICAL, party fields HIGH, the rest MEDIUM.
    """
    if field is not None and field.requires_human_review:
        return FindingImpact.HIGH
    if finding.confidence < low_confidence_threshold:
        return FindingImpact.HIGH
    if _has_keyword(finding.field_key, DEADLINE_KEYWORDS):
        return FindingImpact.CRITICAL
    if _has_keyword(finding.field_key, PARTY_KEYWORDS):
        return FindingImpact.HIGH
    return FindingImpact.MEDIUM


def process_findings(
    findings: Iterable[RawFinding],
    field_map: Optional[Mapping[str, FieldDefinition]] = None,
    low_confidence_threshold: float = DEFAULT_LOW_CONFIDENCE_THRESHOLD,
) -> List[LabeledFinding]:
    """Attach a label and impact to each finding.

    The label comes from the taxonomy field, or is the raw field key when the
    field is unknown or there is no pack.
    """
    field_map = field_map or {}
    labeled = []
    for finding in findings:
        field = field_map.get(field_map_key(finding.category_key, finding.field_key))
        labeled.append(
            LabeledFinding(
                category_key=finding.category_key,
                field_key=finding.field_key,
                label=field.label if field is not None else finding.field_key,
                value=finding.value,
                confidence=finding.confidence,
                impact=classify_impact(finding, field, low_confidence_threshold),
                source_quote=finding.source_quote,
                char_start=finding.char_start,
                char_end=finding.char_end,
            )
        )
    return labeled


def with_span(finding: RawFinding, char_start: int, char_end: int) -> RawFinding:
    return replace(finding, char_start=char_start, char_end=char_end)
