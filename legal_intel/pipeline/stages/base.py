"""Base stage interface for all pipeline stages."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol
from uuid import UUID

from legal_intel.pipeline.enums import PipelineStage, StageStatus
from legal_intel.services.taxonomy.pack import LoadedPack
from legal_intel.services.taxonomy.resolver import TaxonomyResolver


@dataclass
class PipelineJob:
    """Payload of a ``document:extract`` job."""
    tenant_id: UUID
    document_id: UUID
    run_id: UUID
    options: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "PipelineJob":
        return cls(
            tenant_id=UUID(str(payload["tenantId"])),
            document_id=UUID(str(payload["documentId"])),
            run_id=UUID(str(payload["runId"])),
            options=dict(payload.get("options") or {}),
        )

    def to_payload(self) -> Dict[str, Any]:
        return {
            "tenantId": str(self.tenant_id),
            "documentId": str(self.document_id),
            "runId": str(self.run_id),
            "options": self.options,
        }


@dataclass
class StageResult:
    """Standard result from stage execution."""
    status: StageStatus
    data: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    findings_count: int = 0
    actions_count: int = 0
    tokens_used: int = 0

    @classmethod
    def completed(cls, **kwargs) -> "StageResult":
        return cls(status=StageStatus.COMPLETED, **kwargs)

    @classmethod
    def skipped(cls, reason: str, **kwargs) -> "StageResult":
        return cls(status=StageStatus.SKIPPED, error=reason, **kwargs)


@dataclass
class StageContext:
    """State shared by the stages of one run.

    ``uow``, ``run``, ``document`` and ``resolver`` are replaced for every
    stage since each stage runs in its own unit of work. The remaining fields
    carry results forward from earlier stages.
    """
    job: PipelineJob
    uow: Any = None
    run: Any = None
    document: Any = None
    resolver: Optional[TaxonomyResolver] = None
    text: Optional[str] = None
    pack: Optional[LoadedPack] = None


class DocumentTextSource(Protocol):
    """Produces text for a document that has none stored (OCR, parsers)."""

    async def extract_text(self, document: Any) -> Optional[str]:
        ...


class NoTextSource:
    """Text source for deployments where text is always extracted upstream."""

    async def extract_text(self, document: Any) -> Optional[str]:
        return None


class BaseStage(ABC):
    """Base class for pipeline stages."""

    @property
    @abstractmethod
    def name(self) -> PipelineStage:
        """Stage this implementation runs."""
        pass

    @abstractmethod
    async def execute(self, ctx: StageContext) -> StageResult:
        """Execute the stage.

        Raises:
            StageError: When the stage cannot complete; the run fails
        """
        pass

    async def pack_for(self, ctx: StageContext) -> Optional[LoadedPack]:
        """The pack chosen during classification, reloaded if needed."""
        if ctx.pack is None and ctx.run is not None and ctx.run.taxonomy_pack_id and ctx.resolver:
            ctx.pack = await ctx.resolver.load_by_id(ctx.run.taxonomy_pack_id)
        return ctx.pack
