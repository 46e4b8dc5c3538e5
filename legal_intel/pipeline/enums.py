"""Status and type vocabularies shared across the pipeline."""

from enum import Enum


class RunStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class PipelineStage(str, Enum):
    """Stages in execution order."""
    INTAKE = "intake"
    OCR = "ocr"
    CLASSIFY = "classify"
    EXTRACT = "extract"
    RECONCILE = "reconcile"
    ACTIONS = "actions"


STAGE_ORDER = (
    PipelineStage.INTAKE,
    PipelineStage.OCR,
    PipelineStage.CLASSIFY,
    PipelineStage.EXTRACT,
    PipelineStage.RECONCILE,
    PipelineStage.ACTIONS,
)


class StageStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class FindingStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    REVISED = "revised"
    AUTO_APPLIED = "auto_applied"
    CONFLICT = "conflict"


# Statuses that count toward a matter's risk score
RISK_ELIGIBLE_STATUSES = frozenset({
    FindingStatus.PENDING,
    FindingStatus.ACCEPTED,
    FindingStatus.AUTO_APPLIED,
})


class FindingImpact(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ActionStatus(str, Enum):
    """Human resolution of a proposed action."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    DISMISSED = "dismissed"


class ExecutionStatus(str, Enum):
    """Outcome of applying an accepted action's side effect."""
    NOT_EXECUTED = "not_executed"
    EXECUTED = "executed"
    FAILED = "failed"


class ActionType(str, Enum):
    CREATE_TASK = "create_task"
    CREATE_DEADLINE = "create_deadline"
    UPDATE_FIELD = "update_field"
    SEND_NOTIFICATION = "send_notification"
    FLAG_RISK = "flag_risk"
    REQUEST_REVIEW = "request_review"
    AI_RECOMMENDATION = "ai_recommendation"


class CorrectionScope(str, Enum):
    THIS_INSTANCE = "this_instance"
    THIS_MATTER = "this_matter"
    FIRM_WIDE = "firm_wide"


class ConflictDetectionMode(str, Enum):
    EXACT = "exact"
    FUZZY_TEXT = "fuzzy_text"
    FUZZY_NUMBER = "fuzzy_number"
    DATE_RANGE = "date_range"
    SEMANTIC = "semantic"


class PromptTemplateType(str, Enum):
    CLASSIFICATION = "classification"
    EXTRACTION = "extraction"
