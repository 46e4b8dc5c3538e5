"""Unit tests for individual pipeline stages."""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError

from legal_intel.core.exceptions import InferenceClientError, InferenceErrorKind, StageError
from legal_intel.core.inference_client import InferenceResult
from legal_intel.pipeline.enums import StageStatus
from legal_intel.pipeline.stages import (
    ActionsStage,
    ClassifyStage,
    ExtractStage,
    IntakeStage,
    OcrStage,
    ReconcileStage,
)
from legal_intel.pipeline.stages.base import PipelineJob, StageContext

DOCUMENT_TEXT = (
    "Emergency department note. Patient Jane Doe presented after a collision on 2024-03-01. "
    "Statute of limitation runs 2026-03-01."
)


def _result(content, tokens=10):
    payload = content if isinstance(content, str) else json.dumps(content)
    return InferenceResult(content=payload, tokens_used=tokens, model="test/model", was_retried=False)


@pytest.fixture
def ctx(fake_uow, personal_injury_pack):
    job = PipelineJob(tenant_id=uuid4(), document_id=uuid4(), run_id=uuid4())
    matter_id = uuid4()
    run = SimpleNamespace(
        id=job.run_id,
        matter_id=matter_id,
        document_id=job.document_id,
        taxonomy_pack_id=None,
        classified_doc_type=None,
        classification_confidence=None,
        document_hash=None,
        triggered_by=uuid4(),
    )
    document = SimpleNamespace(
        id=job.document_id,
        matter_id=matter_id,
        extracted_text=DOCUMENT_TEXT,
        content_hash=None,
        storage_path="tenant/doc.pdf",
        filename="er-note.pdf",
        mime_type="application/pdf",
    )
    resolver = AsyncMock()
    resolver.resolve_for_matter.return_value = personal_injury_pack
    resolver.load_by_id.return_value = personal_injury_pack
    return StageContext(job=job, uow=fake_uow, run=run, document=document, resolver=resolver)


class TestIntakeAndOcr:

    @pytest.mark.asyncio
    async def test_intake_fingerprints_text(self, ctx):
        result = await IntakeStage().execute(ctx)

        assert result.status == StageStatus.COMPLETED
        assert len(ctx.run.document_hash) == 64
        assert ctx.document.content_hash == ctx.run.document_hash

    @pytest.mark.asyncio
    async def test_intake_rejects_document_from_another_matter(self, ctx):
        ctx.document.matter_id = uuid4()
        with pytest.raises(StageError):
            await IntakeStage().execute(ctx)

    @pytest.mark.asyncio
    async def test_ocr_reuses_stored_text(self, ctx):
        result = await OcrStage().execute(ctx)

        assert result.data["source"] == "stored"
        assert ctx.text == DOCUMENT_TEXT

    @pytest.mark.asyncio
    async def test_ocr_without_text_or_source_fails(self, ctx):
        ctx.document.extracted_text = None
        with pytest.raises(StageError, match="No text could be extracted"):
            await OcrStage().execute(ctx)

    @pytest.mark.asyncio
    async def test_ocr_stores_text_from_source(self, ctx, fake_uow):
        ctx.document.extracted_text = None
        source = SimpleNamespace(extract_text=AsyncMock(return_value="scanned text"))

        await OcrStage(source).execute(ctx)

        fake_uow.documents.store_extracted_text.assert_awaited_once_with(ctx.document.id, "scanned text")
        assert ctx.text == "scanned text"


class TestClassifyStage:

    @pytest.mark.asyncio
    async def test_classifies_document(self, ctx, personal_injury_pack):
        client = SimpleNamespace(call=AsyncMock(return_value=_result({"documentType": "medical_record", "confidence": 0.93})))

        result = await ClassifyStage(client, review_threshold=0.6).execute(ctx)

        assert result.status == StageStatus.COMPLETED
        assert ctx.run.classified_doc_type == "medical_record"
        assert ctx.run.classification_confidence == 0.93
        assert ctx.run.taxonomy_pack_id == personal_injury_pack.id
        ctx.uow.tasks.create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_low_confidence_requests_review(self, ctx):
        client = SimpleNamespace(call=AsyncMock(return_value=_result({"documentType": "police_report", "confidence": 0.42})))

        result = await ClassifyStage(client, review_threshold=0.6).execute(ctx)

        assert result.data["reviewTaskCreated"] is True
        task = ctx.uow.tasks.create.await_args.kwargs
        assert task["title"] == "Review document classification (confidence: 42%)"
        assert task["priority"] == "high"

    @pytest.mark.asyncio
    async def test_review_task_failure_does_not_fail_stage(self, ctx):
        ctx.uow.tasks.create.side_effect = IntegrityError("insert", {}, Exception("dup"))
        client = SimpleNamespace(call=AsyncMock(return_value=_result({"documentType": "police_report", "confidence": 0.1})))

        result = await ClassifyStage(client, review_threshold=0.6).execute(ctx)

        assert result.status == StageStatus.COMPLETED
        assert result.data["reviewTaskCreated"] is False

    @pytest.mark.asyncio
    async def test_unknown_document_type_fails_stage(self, ctx):
        client = SimpleNamespace(call=AsyncMock(return_value=_result({"documentType": "recipe", "confidence": 0.9})))
        with pytest.raises(StageError):
            await ClassifyStage(client).execute(ctx)

    @pytest.mark.asyncio
    async def test_exhausted_retries_skip_stage(self, ctx):
        client = SimpleNamespace(
            call=AsyncMock(side_effect=InferenceClientError("slow", InferenceErrorKind.TIMEOUT))
        )

        result = await ClassifyStage(client).execute(ctx)

        assert result.status == StageStatus.SKIPPED
        assert ctx.run.classified_doc_type is None

    @pytest.mark.asyncio
    async def test_missing_pack_skips_stage(self, ctx):
        ctx.resolver.resolve_for_matter.return_value = None
        client = SimpleNamespace(call=AsyncMock())

        result = await ClassifyStage(client).execute(ctx)

        assert result.status == StageStatus.SKIPPED
        client.call.assert_not_awaited()


class TestExtractStage:

    @pytest.mark.asyncio
    async def test_extracts_labeled_findings(self, ctx, personal_injury_pack):
        ctx.pack = personal_injury_pack
        ctx.run.classified_doc_type = "medical_record"
        findings = [
            {"categoryKey": "dates", "fieldKey": "incident_date", "value": "2024-03-01",
             "sourceQuote": "collision on 2024-03-01", "confidence": 0.95},
            {"categoryKey": "dates", "fieldKey": "incident_date", "value": "2024-03-01.", "confidence": 0.7},
        ]
        client = SimpleNamespace(call=AsyncMock(return_value=_result({"findings": findings}, tokens=25)))

        result = await ExtractStage(client, chunk_size=2000, chunk_overlap=100).execute(ctx)

        assert result.findings_count == 1
        assert result.tokens_used == 25
        rows = ctx.uow.findings.create_many.await_args.args[0]
        assert rows[0]["label"] == "Incident Date"
        assert rows[0]["impact"] == "critical"
        assert rows[0]["status"] == "pending"
        assert rows[0]["char_start"] == 0

    @pytest.mark.asyncio
    async def test_one_failed_chunk_is_tolerated(self, ctx, personal_injury_pack):
        ctx.pack = personal_injury_pack
        client = SimpleNamespace(
            call=AsyncMock(
                side_effect=[
                    InferenceClientError("down", InferenceErrorKind.TRANSIENT_ERROR),
                    _result([]),
                    _result([]),
                ]
            )
        )

        result = await ExtractStage(client, chunk_size=60, chunk_overlap=10).execute(ctx)

        assert result.status == StageStatus.COMPLETED
        assert result.data["failedChunks"] == 1

    @pytest.mark.asyncio
    async def test_every_chunk_failing_fails_stage(self, ctx, personal_injury_pack):
        ctx.pack = personal_injury_pack
        client = SimpleNamespace(
            call=AsyncMock(side_effect=InferenceClientError("down", InferenceErrorKind.NETWORK_ERROR))
        )
        with pytest.raises(StageError, match="chunks failed"):
            await ExtractStage(client, chunk_size=60, chunk_overlap=10).execute(ctx)

    @pytest.mark.asyncio
    async def test_malformed_output_fails_stage(self, ctx, personal_injury_pack):
        ctx.pack = personal_injury_pack
        client = SimpleNamespace(call=AsyncMock(return_value=_result("I found a date!")))
        with pytest.raises(StageError):
            await ExtractStage(client).execute(ctx)

    @pytest.mark.asyncio
    async def test_missing_credentials_fail_stage(self, ctx, personal_injury_pack):
        ctx.pack = personal_injury_pack
        client = SimpleNamespace(
            call=AsyncMock(side_effect=InferenceClientError("no key", InferenceErrorKind.CONFIG_ERROR))
        )
        with pytest.raises(StageError):
            await ExtractStage(client, chunk_size=60, chunk_overlap=10).execute(ctx)
        assert client.call.await_count == 1


class TestReconcileStage:

    @pytest.mark.asyncio
    async def test_in_run_disagreement_becomes_conflict(self, ctx, fake_uow, finding_factory):
        confident = finding_factory(field_key="claimant_name", category_key="parties", value="Jane Doe", confidence=0.95)
        other = finding_factory(field_key="claimant_name", category_key="parties", value="Janet Doe", confidence=0.9)
        fake_uow.findings.list_for_run.return_value = [other, confident]
        fake_uow.findings.list_for_matter.return_value = []
        fake_uow.corrections.list_applicable.return_value = []

        result = await ReconcileStage(default_threshold=0.85).execute(ctx)

        assert confident.status == "auto_applied"
        assert other.status == "conflict"
        assert other.existing_value == "Jane Doe"
        assert result.data["conflict"] == 1

    @pytest.mark.asyncio
    async def test_correction_beats_prior_finding(self, ctx, fake_uow, finding_factory):
        new = finding_factory(value="2024-03-02", confidence=0.99)
        fake_uow.findings.list_for_run.return_value = [new]
        fake_uow.findings.list_for_matter.return_value = [
            finding_factory(value="2024-03-02", status="accepted")
        ]
        fake_uow.corrections.list_applicable.return_value = [
            SimpleNamespace(category_key="dates", field_key="incident_date", corrected_value="2024-03-01")
        ]

        await ReconcileStage().execute(ctx)

        assert new.status == "conflict"
        assert new.existing_value == "2024-03-01"

    @pytest.mark.asyncio
    async def test_document_without_matter_is_skipped(self, ctx):
        ctx.run.matter_id = None
        result = await ReconcileStage().execute(ctx)
        assert result.status == StageStatus.SKIPPED


class TestActionsStage:

    @pytest.mark.asyncio
    async def test_proposals_are_stored_pending(self, ctx, fake_uow, finding_factory):
        fake_uow.findings.list_for_run.return_value = [
            finding_factory(status="conflict", existing_value="Jane Doe", value="Jane Roe", impact="high")
        ]
        ctx.pack = None
        ctx.run.taxonomy_pack_id = None

        result = await ActionsStage().execute(ctx)

        assert result.actions_count == 1
        row = fake_uow.actions.create_many.await_args.args[0][0]
        assert row["action_type"] == "flag_risk"
        assert row["status"] == "pending"
        assert row["execution_status"] == "not_executed"
        assert row["pipeline_run_id"] == ctx.run.id

    @pytest.mark.asyncio
    async def test_no_findings_skips(self, ctx, fake_uow):
        fake_uow.findings.list_for_run.return_value = []
        result = await ActionsStage().execute(ctx)
        assert result.status == StageStatus.SKIPPED
