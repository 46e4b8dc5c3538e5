"""Classification: pick the document type from the matter's taxonomy pack."""

from typing import Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from legal_intel.core.config import settings
from legal_intel.core.exceptions import (
    InferenceClientError,
    MalformedModelOutputError,
    StageError,
)
from legal_intel.core.inference_client import InferenceClient
from legal_intel.pipeline.enums import PipelineStage, PromptTemplateType
from legal_intel.pipeline.prompts import build_classification_prompt
from legal_intel.pipeline.stages.base import BaseStage, StageContext, StageResult
from legal_intel.services.taxonomy.pack import LoadedPack
from legal_intel.utils.json_parser import parse_model_json
from legal_intel.utils.logging import get_logger

LOGGER = get_logger(__name__)


def parse_classification(content: str, pack: LoadedPack) -> Tuple[str, float]:
    """Validate a classification response against the pack's document types.

    Raises:
        MalformedModelOutputError: If the response is not the expected object
            or names a type the pack does not define
    """
    parsed = parse_model_json(content, expect=dict)

    doc_type = parsed.get("documentType")
    if not isinstance(doc_type, str) or pack.document_type(doc_type) is None:
        raise MalformedModelOutputError(f"Unknown documentType in classification: {doc_type!r}")

    confidence = parsed.get("confidence", 0.0)
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
        raise MalformedModelOutputError(f"Classification confidence is not a number: {confidence!r}")

    return doc_type, min(max(float(confidence), 0.0), 1.0)


class ClassifyStage(BaseStage):

    def __init__(self, client: InferenceClient, review_threshold: Optional[float] = None):
        self.client = client
        self.review_threshold = (
            review_threshold
            if review_threshold is not None
            else settings.pipeline.classification_review_threshold
        )

    @property
    def name(self) -> PipelineStage:
        return PipelineStage.CLASSIFY

    async def execute(self, ctx: StageContext) -> StageResult:
        run = ctx.run
        document = ctx.document
        text = ctx.text or (document.extracted_text if document is not None else None)
        if not text:
            raise StageError(self.name.value, "No extracted text available")

        pack = None
        if run.matter_id is not None:
            pack = await ctx.resolver.resolve_for_matter(ctx.job.tenant_id, run.matter_id)
        ctx.pack = pack

        if pack is None:
            return StageResult.skipped("No taxonomy pack for this matter")
        run.taxonomy_pack_id = pack.id
        if not pack.document_types:
            return StageResult.skipped("Taxonomy pack defines no document types")

        prompt = build_classification_prompt(
            pack.document_types,
            text,
            template=pack.template_for(PromptTemplateType.CLASSIFICATION),
            mime_type=document.mime_type,
            filename=document.filename,
        )

        try:
            result = await self.client.call(
                model=prompt.model,
                messages=prompt.to_messages(),
                temperature=prompt.temperature,
                max_tokens=prompt.max_tokens,
                response_format={"type": "json_object"},
                timeout=settings.pipeline.classify_timeout_seconds,
            )
        except InferenceClientError as e:
            if e.is_retryable:
                LOGGER.warning(
                    f"Classification unavailable after retries, continuing without a document type: {e}",
                    extra={"run_id": str(run.id), "kind": e.kind.value},
                )
                return StageResult.skipped(f"Classification unavailable ({e.kind.value})")
            raise StageError(self.name.value, str(e), original_error=e) from e

        try:
            doc_type, confidence = parse_classification(result.content, pack)
        except MalformedModelOutputError as e:
            raise StageError(self.name.value, e.message, original_error=e) from e

        run.classified_doc_type = doc_type
        run.classification_confidence = confidence

        review_task = False
        if confidence < self.review_threshold:
            review_task = await self._request_review(ctx, doc_type, confidence)

        LOGGER.info(
            f"Classified document {document.id} as {doc_type} ({confidence:.2f})",
            extra={"run_id": str(run.id), "was_retried": result.was_retried},
        )
        return StageResult.completed(
            data={
                "documentType": doc_type,
                "confidence": confidence,
                "reviewTaskCreated": review_task,
            },
            tokens_used=result.tokens_used,
        )

    async def _request_review(self, ctx: StageContext, doc_type: str, confidence: float) -> bool:
        """Best effort: a failure here never fails the stage."""
        try:
            async with ctx.uow.savepoint():
                await ctx.uow.tasks.create(
                    matter_id=ctx.run.matter_id,
                    title=f"Review document classification (confidence: {confidence * 100:.0f}%)",
                    description=(
                        f'The pipeline classified a document as "{doc_type}" with low confidence '
                        f"({confidence * 100:.1f}%). Please review and correct if needed."
                    ),
                    status="pending",
                    priority="high",
                    created_by=ctx.run.triggered_by,
                )
            return True
        except SQLAlchemyError:
            LOGGER.error("Could not create classification review task", exc_info=True)
            return False
