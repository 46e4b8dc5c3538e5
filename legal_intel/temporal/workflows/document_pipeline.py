"""Workflow for ``document:extract`` jobs.

The whole stage sequence runs inside a single activity invocation; the
orchestrator persists progress per stage and records failures itself, so
the activity is never retried by Temporal.
"""

from datetime import timedelta

from temporalio import workflow
from temporalio.common import RetryPolicy

with workflow.unsafe.imports_passed_through():
    from legal_intel.temporal.core.workflow_registry import WorkflowRegistry, WorkflowType

PIPELINE_ACTIVITY_TIMEOUT = timedelta(minutes=30)


@WorkflowRegistry.register(category=WorkflowType.PIPELINE)
@workflow.defn(name="document:extract")
class DocumentPipelineWorkflow:
    """Runs the document intelligence pipeline for one run."""

    def __init__(self):
        self._status = "queued"

    @workflow.query
    def get_status(self) -> dict:
        return {"status": self._status}

    @workflow.run
    async def run(self, payload: dict) -> dict:
        """
        Args:
            payload: {"tenantId", "documentId", "runId", "options"}
        """
        workflow.logger.info(f"Starting document pipeline for run {payload.get('runId')}")
        self._status = "running"

        result = await workflow.execute_activity(
            "run_document_pipeline",
            payload,
            start_to_close_timeout=PIPELINE_ACTIVITY_TIMEOUT,
            retry_policy=RetryPolicy(maximum_attempts=1),
        )

        self._status = result.get("status", "completed")
        workflow.logger.info(f"Document pipeline finished for run {payload.get('runId')}: {self._status}")
        return result
