"""Temporal activity executing one pipeline run."""

from typing import Any, Dict

from temporalio import activity

from legal_intel.pipeline.stages.base import PipelineJob
from legal_intel.temporal.core.activity_registry import ActivityRegistry
from legal_intel.temporal.runtime import get_runtime
from legal_intel.utils.logging import get_logger

LOGGER = get_logger(__name__)


@ActivityRegistry.register("pipeline", "run_document_pipeline")
@activity.defn(name="run_document_pipeline")
async def run_document_pipeline(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Run every stage of a job sequentially.

    Stage failures are recorded on the run by the orchestrator and reported as
    a ``failed`` status here rather than raised.
    """
    job = PipelineJob.from_payload(payload)
    LOGGER.info(
        f"Running pipeline for run {job.run_id}",
        extra={"run_id": str(job.run_id), "document_id": str(job.document_id)},
    )

    status = await get_runtime().orchestrator.run(job)
    return {"runId": str(job.run_id), "status": status.value}
