"""Text acquisition. Reuses stored text, otherwise asks a DocumentTextSource."""

from typing import Optional

from legal_intel.core.exceptions import StageError
from legal_intel.pipeline.enums import PipelineStage
from legal_intel.pipeline.stages.base import (
    BaseStage,
    DocumentTextSource,
    NoTextSource,
    StageContext,
    StageResult,
)
from legal_intel.utils.logging import get_logger

LOGGER = get_logger(__name__)


class OcrStage(BaseStage):

    def __init__(self, text_source: Optional[DocumentTextSource] = None):
        self.text_source = text_source or NoTextSource()

    @property
    def name(self) -> PipelineStage:
        return PipelineStage.OCR

    async def execute(self, ctx: StageContext) -> StageResult:
        document = ctx.document
        if document is None:
            raise StageError(self.name.value, "Document not found")

        if document.extracted_text and document.extracted_text.strip():
            ctx.text = document.extracted_text
            return StageResult.completed(data={"source": "stored", "characters": len(ctx.text)})

        try:
            text = await self.text_source.extract_text(document)
        except Exception as e:
            LOGGER.error(f"Text extraction failed for document {document.id}", exc_info=True)
            raise StageError(self.name.value, f"Text extraction failed: {e}", original_error=e) from e

        if not text or not text.strip():
            raise StageError(self.name.value, "No text could be extracted from document")

        await ctx.uow.documents.store_extracted_text(document.id, text)
        ctx.text = text
        return StageResult.completed(data={"source": "extracted", "characters": len(text)})
