"""Request and response models for the pipeline review endpoints.

Field names are snake_case in Python and camelCase on the wire.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from legal_intel.pipeline.enums import CorrectionScope


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class ResolveFindingRequest(CamelModel):
    """Body of ``PATCH /pipeline/findings/{finding_id}``."""

    status: Literal["accepted", "rejected", "revised"] = Field(..., description="Resolution")
    corrected_value: Optional[str] = Field(None, description="Replacement value for a revision")
    correction_scope: Optional[CorrectionScope] = Field(
        None, description="How widely the correction applies"
    )

    @model_validator(mode="after")
    def revision_requires_correction(self) -> "ResolveFindingRequest":
        if self.status == "revised":
            if not self.corrected_value or not self.corrected_value.strip():
                raise ValueError("correctedValue is required when status is 'revised'")
            if self.correction_scope is None:
                raise ValueError("correctionScope is required when status is 'revised'")
        return self

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "examples": [
                {"status": "accepted"},
                {"status": "revised", "correctedValue": "2025-03-15", "correctionScope": "this_matter"},
            ]
        },
    )


class ResolveActionRequest(CamelModel):
    """Body of ``PATCH /pipeline/actions/{action_id}``."""

    status: Literal["accepted", "dismissed"] = Field(..., description="Resolution")


class CreateRunRequest(CamelModel):
    """Body of ``POST /pipeline/runs``."""

    document_id: UUID = Field(..., description="Document to process")
    options: Dict[str, Any] = Field(default_factory=dict, description="Job options")


class PipelineRunResponse(CamelModel):
    id: UUID
    matter_id: Optional[UUID] = None
    document_id: UUID
    status: str
    current_stage: Optional[str] = None
    stage_statuses: Dict[str, str] = Field(default_factory=dict)
    document_hash: Optional[str] = None
    classified_doc_type: Optional[str] = None
    classification_confidence: Optional[float] = None
    taxonomy_pack_id: Optional[UUID] = None
    findings_count: int = 0
    actions_count: int = 0
    total_tokens_used: int = 0
    error: Optional[str] = None
    triggered_by: Optional[UUID] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class PipelineFindingResponse(CamelModel):
    id: UUID
    pipeline_run_id: UUID
    matter_id: Optional[UUID] = None
    document_id: Optional[UUID] = None
    category_key: str
    field_key: str
    label: str
    value: str
    source_quote: Optional[str] = None
    char_start: Optional[int] = None
    char_end: Optional[int] = None
    confidence: float
    impact: str
    status: str
    existing_value: Optional[str] = None
    corrected_value: Optional[str] = None
    resolved_by: Optional[UUID] = None
    resolved_at: Optional[datetime] = None


class PipelineActionResponse(CamelModel):
    id: UUID
    pipeline_run_id: UUID
    matter_id: Optional[UUID] = None
    action_type: str
    title: str
    description: Optional[str] = None
    priority: int
    status: str
    execution_status: str
    is_deterministic: bool
    action_payload: Optional[Dict[str, Any]] = None
    trigger_finding_id: Optional[UUID] = None
    trigger_rule_id: Optional[UUID] = None
    error: Optional[str] = None
    executed_at: Optional[datetime] = None
    resolved_by: Optional[UUID] = None
    resolved_at: Optional[datetime] = None


class PipelineRunDetailResponse(CamelModel):
    run: PipelineRunResponse
    findings: List[PipelineFindingResponse]
    actions: List[PipelineActionResponse]


class ResolveActionResponse(CamelModel):
    action: PipelineActionResponse
    executed: bool
    error: Optional[str] = None


class RiskFactorResponse(CamelModel):
    key: str
    label: str
    contribution: float
    detail: str


class RiskScoreResponse(CamelModel):
    matter_id: UUID
    score: int
    factors: List[RiskFactorResponse]
