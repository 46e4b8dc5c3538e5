from legal_intel.pipeline.stages.actions import ActionsStage
from legal_intel.pipeline.stages.base import BaseStage, PipelineJob, StageContext, StageResult
from legal_intel.pipeline.stages.classify import ClassifyStage
from legal_intel.pipeline.stages.extract import ExtractStage
from legal_intel.pipeline.stages.intake import IntakeStage
from legal_intel.pipeline.stages.ocr import OcrStage
from legal_intel.pipeline.stages.reconcile import ReconcileStage

__all__ = [
    "ActionsStage",
    "BaseStage",
    "ClassifyStage",
    "ExtractStage",
    "IntakeStage",
    "OcrStage",
    "PipelineJob",
    "ReconcileStage",
    "StageContext",
    "StageResult",
]
