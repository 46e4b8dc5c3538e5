"""Extraction: per-chunk model calls producing labeled, deduplicated findings."""

from typing import List

from legal_intel.core.config import settings
from legal_intel.core.exceptions import (
    InferenceClientError,
    InferenceErrorKind,
    MalformedModelOutputError,
    StageError,
)
from legal_intel.core.inference_client import InferenceClient
from legal_intel.pipeline.chunking import chunk_text_overlapping
from legal_intel.pipeline.enums import FindingStatus, PipelineStage, PromptTemplateType
from legal_intel.pipeline.findings import (
    RawFinding,
    deduplicate_findings,
    process_findings,
    with_span,
)
from legal_intel.pipeline.prompts import build_extraction_prompt
from legal_intel.pipeline.stages.base import BaseStage, StageContext, StageResult
from legal_intel.utils.json_parser import parse_findings_payload
from legal_intel.utils.logging import get_logger

LOGGER = get_logger(__name__)


class ExtractStage(BaseStage):
    """Runs the extraction prompt over overlapping chunks of the document.

    A transport-level failure on one chunk only loses that chunk; the stage
    fails when every chunk fails. Malformed model output, or a permanent
    configuration error, fails the stage straight away.
    """

    def __init__(
        self,
        client: InferenceClient,
        chunk_size: int = None,
        chunk_overlap: int = None,
        chunk_retries: int = None,
        low_confidence_threshold: float = None,
    ):
        pipeline = settings.pipeline
        self.client = client
        self.chunk_size = chunk_size or pipeline.chunk_size
        self.chunk_overlap = chunk_overlap if chunk_overlap is not None else pipeline.chunk_overlap
        self.chunk_retries = chunk_retries if chunk_retries is not None else pipeline.extract_chunk_retries
        self.low_confidence_threshold = (
            low_confidence_threshold
            if low_confidence_threshold is not None
            else pipeline.low_confidence_threshold
        )

    @property
    def name(self) -> PipelineStage:
        return PipelineStage.EXTRACT

    async def execute(self, ctx: StageContext) -> StageResult:
        run = ctx.run
        text = ctx.text or (ctx.document.extracted_text if ctx.document is not None else None)
        if not text:
            raise StageError(self.name.value, "No extracted text available")

        pack = await self.pack_for(ctx)
        if pack is None:
            return StageResult.skipped("No taxonomy pack for this matter")

        categories = pack.categories_for_document_type(run.classified_doc_type)
        if not any(c.fields for c in categories):
            return StageResult.skipped("No taxonomy fields to extract")

        chunks = chunk_text_overlapping(text, self.chunk_size, self.chunk_overlap)
        template = pack.template_for(PromptTemplateType.EXTRACTION)

        raw: List[RawFinding] = []
        tokens_used = 0
        failed_chunks = 0

        for chunk in chunks:
            prompt = build_extraction_prompt(
                categories,
                chunk.text,
                chunk.index,
                len(chunks),
                run.classified_doc_type,
                template=template,
            )
            try:
                result = await self.client.call(
                    model=prompt.model,
                    messages=prompt.to_messages(),
                    temperature=prompt.temperature,
                    max_tokens=prompt.max_tokens,
                    response_format={"type": "json_object"},
                    max_retries=self.chunk_retries,
                    timeout=settings.pipeline.extract_timeout_seconds,
                )
            except InferenceClientError as e:
                if e.kind == InferenceErrorKind.CONFIG_ERROR:
                    raise StageError(self.name.value, str(e), original_error=e) from e
                failed_chunks += 1
                LOGGER.warning(
                    f"Chunk {chunk.index + 1}/{len(chunks)} failed: {e}",
                    extra={"run_id": str(run.id), "kind": e.kind.value},
                )
                continue

            tokens_used += result.tokens_used
            try:
                for item in parse_findings_payload(result.content):
                    finding = RawFinding.from_payload(item)
                    if finding is not None:
                        raw.append(with_span(finding, chunk.char_start, chunk.char_end))
            except MalformedModelOutputError as e:
                raise StageError(
                    self.name.value,
                    f"Chunk {chunk.index + 1}/{len(chunks)}: {e.message}",
                    original_error=e,
                ) from e

        if chunks and failed_chunks == len(chunks):
            raise StageError(self.name.value, f"All {len(chunks)} chunks failed extraction")

        labeled = process_findings(
            deduplicate_findings(raw), pack.field_map, self.low_confidence_threshold
        )

        rows = [
            {
                "pipeline_run_id": run.id,
                "matter_id": run.matter_id,
                "document_id": run.document_id,
                "category_key": f.category_key,
                "field_key": f.field_key,
                "label": f.label,
                "value": f.value,
                "source_quote": f.source_quote,
                "confidence": round(f.confidence, 3),
                "impact": f.impact.value,
                "status": FindingStatus.PENDING.value,
                "char_start": f.char_start,
                "char_end": f.char_end,
            }
            for f in labeled
        ]
        if rows:
            await ctx.uow.findings.create_many(rows)

        LOGGER.info(
            f"Extracted {len(rows)} findings from {len(chunks)} chunks ({failed_chunks} failed)",
            extra={"run_id": str(run.id)},
        )
        return StageResult.completed(
            data={"chunks": len(chunks), "failedChunks": failed_chunks, "rawFindings": len(raw)},
            findings_count=len(rows),
            tokens_used=tokens_used,
        )
