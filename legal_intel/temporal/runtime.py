"""Process-wide pipeline dependencies for the worker.

The worker builds one PipelineRuntime at startup and installs it; the
``run_document_pipeline`` activity reads it from here. All inference calls in
the process share the runtime's ConcurrencyPool.
"""

from dataclasses import dataclass
from typing import Optional

from legal_intel.core.concurrency import ConcurrencyPool
from legal_intel.core.database import async_session_maker
from legal_intel.core.exceptions import ConfigurationError
from legal_intel.core.inference_client import create_inference_client
from legal_intel.core.unit_of_work import unit_of_work_factory
from legal_intel.pipeline.orchestrator import PipelineOrchestrator
from legal_intel.pipeline.stages.actions import ActionsStage
from legal_intel.pipeline.stages.base import DocumentTextSource
from legal_intel.pipeline.stages.classify import ClassifyStage
from legal_intel.pipeline.stages.extract import ExtractStage
from legal_intel.pipeline.stages.intake import IntakeStage
from legal_intel.pipeline.stages.ocr import OcrStage
from legal_intel.pipeline.stages.reconcile import ReconcileStage


@dataclass
class PipelineRuntime:
    pool: ConcurrencyPool
    orchestrator: PipelineOrchestrator


def build_runtime(
    pool: ConcurrencyPool,
    text_source: Optional[DocumentTextSource] = None,
    session_factory=async_session_maker,
) -> PipelineRuntime:
    client = create_inference_client(pool)
    orchestrator = PipelineOrchestrator(
        uow_factory=unit_of_work_factory(session_factory),
        stages=[
            IntakeStage(),
            OcrStage(text_source),
            ClassifyStage(client),
            ExtractStage(client),
            ReconcileStage(),
            ActionsStage(),
        ],
    )
    return PipelineRuntime(pool=pool, orchestrator=orchestrator)


_runtime: Optional[PipelineRuntime] = None


def install_runtime(runtime: PipelineRuntime) -> None:
    global _runtime
    _runtime = runtime


def get_runtime() -> PipelineRuntime:
    if _runtime is None:
        raise ConfigurationError("Pipeline runtime not installed; start the worker via legal_intel.temporal.worker")
    return _runtime
