"""Temporal client connection and the pipeline job enqueuer."""

from typing import Any, Dict, Optional

from temporalio.client import Client as TemporalClient

from legal_intel.core.config import settings
from legal_intel.utils.logging import get_logger

LOGGER = get_logger(__name__)


class TemporalClientManager:
    """Manages Temporal client connection."""

    _client: Optional[TemporalClient] = None

    async def get_client(self) -> TemporalClient:
        """Get or create the Temporal client instance."""
        if self._client is None:
            self._client = await TemporalClient.connect(
                f"{settings.temporal.host}:{settings.temporal.port}",
                namespace=settings.temporal.namespace,
            )
        return self._client


_temporal_manager = TemporalClientManager()


class PipelineJobEnqueuer:
    """Starts one workflow per job.

    The job name is the workflow type (``document:extract``) and the workflow
    id is ``pipeline-run-<runId>``, so enqueuing the same run twice is
    rejected by Temporal instead of running it twice.
    """

    def __init__(self, client_manager: TemporalClientManager = _temporal_manager, task_queue: str = None):
        self.client_manager = client_manager
        self.task_queue = task_queue or settings.temporal.task_queue

    async def enqueue(self, job_name: str, payload: Dict[str, Any]) -> str:
        """Start the workflow for a job.

        Args:
            job_name: Registered workflow name
            payload: ``{tenantId, documentId, runId, options}``

        Returns:
            Temporal workflow id
        """
        client = await self.client_manager.get_client()
        handle = await client.start_workflow(
            job_name,
            payload,
            id=f"pipeline-run-{payload['runId']}",
            task_queue=self.task_queue,
        )
        LOGGER.info(
            f"Enqueued {job_name} as {handle.id}",
            extra={"run_id": payload["runId"], "task_queue": self.task_queue},
        )
        return handle.id
