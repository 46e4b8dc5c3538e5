"""Temporal worker for the document intelligence pipeline.

This worker:
- Connects to the Temporal server, retrying while it starts up
- Builds the process-wide inference ConcurrencyPool once
- Registers discovered workflows and activities
- Polls the pipeline task queue with a bounded activity pool
"""

import asyncio

from temporalio.client import Client
from temporalio.worker import Worker

from legal_intel.core.concurrency import ConcurrencyPool
from legal_intel.core.config import settings
from legal_intel.temporal.core.activity_registry import ActivityRegistry
from legal_intel.temporal.core.discovery import discover_all
from legal_intel.temporal.core.workflow_registry import WorkflowRegistry
from legal_intel.temporal.runtime import build_runtime, install_runtime
from legal_intel.utils.logging import get_logger

LOGGER = get_logger(__name__)

CONNECT_ATTEMPTS = 10
CONNECT_DELAY_SECONDS = 3


async def connect_with_retries(target: str, namespace: str) -> Client:
    for attempt in range(1, CONNECT_ATTEMPTS):
        try:
            return await Client.connect(target, namespace=namespace)
        except RuntimeError as e:
            LOGGER.warning(
                f"Temporal not reachable at {target} (attempt {attempt}/{CONNECT_ATTEMPTS}): {e}"
            )
            await asyncio.sleep(CONNECT_DELAY_SECONDS)
    return await Client.connect(target, namespace=namespace)


async def main():
    """Start the Temporal worker."""
    target = f"{settings.temporal.host}:{settings.temporal.port}"
    task_queue = settings.temporal.task_queue

    LOGGER.info(f"Connecting to Temporal server at {target}")
    client = await connect_with_retries(target, settings.temporal.namespace)

    discover_all()
    pool = ConcurrencyPool(settings.inference.max_concurrent_calls)
    install_runtime(build_runtime(pool))

    workflows = WorkflowRegistry.get_workflows(task_queue)
    activities = ActivityRegistry.get_activities()

    worker = Worker(
        client,
        task_queue=task_queue,
        workflows=workflows,
        activities=activities,
        max_concurrent_activities=settings.temporal.max_concurrent_activities,
    )

    LOGGER.info(
        "Temporal worker started",
        extra={
            "task_queue": task_queue,
            "workflows": [w.__name__ for w in workflows],
            "activities": ActivityRegistry.names(),
            "max_concurrent_activities": settings.temporal.max_concurrent_activities,
            "max_concurrent_ai_calls": settings.inference.max_concurrent_calls,
        },
    )
    await worker.run()


def run() -> None:
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        LOGGER.info("Worker stopped by user")


if __name__ == "__main__":
    run()
