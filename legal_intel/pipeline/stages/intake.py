"""Intake: confirm the document and fingerprint it."""

import hashlib

from legal_intel.core.exceptions import StageError
from legal_intel.pipeline.enums import PipelineStage
from legal_intel.pipeline.stages.base import BaseStage, StageContext, StageResult
from legal_intel.utils.logging import get_logger

LOGGER = get_logger(__name__)


class IntakeStage(BaseStage):

    @property
    def name(self) -> PipelineStage:
        return PipelineStage.INTAKE

    async def execute(self, ctx: StageContext) -> StageResult:
        document = ctx.document
        run = ctx.run

        if document is None:
            raise StageError(self.name.value, "Document not found")
        if run.matter_id and document.matter_id and run.matter_id != document.matter_id:
            raise StageError(self.name.value, "Document does not belong to the run's matter")

        if document.content_hash:
            document_hash = document.content_hash
        else:
            basis = document.extracted_text or f"{document.id}:{document.storage_path or document.filename}"
            document_hash = hashlib.sha256(basis.encode("utf-8")).hexdigest()
            if document.extracted_text:
                document.content_hash = document_hash

        run.document_hash = document_hash
        if run.matter_id is None and document.matter_id is not None:
            run.matter_id = document.matter_id

        LOGGER.info(
            f"Intake accepted document {document.id}",
            extra={"run_id": str(run.id), "document_hash": document_hash},
        )
        return StageResult.completed(data={"documentHash": document_hash})
