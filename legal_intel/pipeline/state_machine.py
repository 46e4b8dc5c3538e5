"""Pure state machine for a pipeline run.

``transition(state, event)`` returns the next state or raises
InvalidTransitionError. Nothing here touches the database or the queue.

Run:    queued -> running -> completed | failed   (completed/failed are terminal)
Stage:  pending -> running -> completed | failed | skipped
        pending -> skipped                          (skipping the next stage)

Stages advance strictly in STAGE_ORDER; a stage may start only when every
earlier stage is completed or skipped.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Union

from legal_intel.core.exceptions import InvalidTransitionError
from legal_intel.pipeline.enums import PipelineStage, RunStatus, STAGE_ORDER, StageStatus

_DONE = (StageStatus.COMPLETED, StageStatus.SKIPPED)


@dataclass(frozen=True)
class RunState:
    status: RunStatus
    current_stage: Optional[PipelineStage]
    stage_statuses: Mapping[PipelineStage, StageStatus]
    failed_stage: Optional[PipelineStage] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (RunStatus.COMPLETED, RunStatus.FAILED)

    def next_stage(self) -> Optional[PipelineStage]:
        """First stage that is still pending, if any."""
        for stage in STAGE_ORDER:
            if self.stage_statuses[stage] == StageStatus.PENDING:
                return stage
        return None

    def to_record(self) -> Dict[str, str]:
        return {stage.value: self.stage_statuses[stage].value for stage in STAGE_ORDER}

    @classmethod
    def from_record(
        cls,
        status: str,
        current_stage: Optional[str],
        stage_statuses: Optional[Mapping[str, str]],
    ) -> "RunState":
        """Rebuild state from a stored run. Missing stages read as pending."""
        stored = stage_statuses or {}
        statuses = {
            stage: StageStatus(stored.get(stage.value, StageStatus.PENDING.value))
            for stage in STAGE_ORDER
        }
        failed = next((s for s in STAGE_ORDER if statuses[s] == StageStatus.FAILED), None)
        return cls(
            status=RunStatus(status),
            current_stage=PipelineStage(current_stage) if current_stage else None,
            stage_statuses=MappingProxyType(statuses),
            failed_stage=failed,
        )


@dataclass(frozen=True)
class StageStarted:
    stage: PipelineStage


@dataclass(frozen=True)
class StageCompleted:
    stage: PipelineStage


@dataclass(frozen=True)
class StageSkipped:
    stage: PipelineStage
    reason: Optional[str] = None


@dataclass(frozen=True)
class StageFailed:
    stage: PipelineStage
    error: str = field(default="", compare=False)


@dataclass(frozen=True)
class RunCompleted:
    pass


RunEvent = Union[StageStarted, StageCompleted, StageSkipped, StageFailed, RunCompleted]


def initial_state() -> RunState:
    return RunState(
        status=RunStatus.QUEUED,
        current_stage=None,
        stage_statuses=MappingProxyType({stage: StageStatus.PENDING for stage in STAGE_ORDER}),
    )


def _with_stage(
    state: RunState,
    stage: PipelineStage,
    stage_status: StageStatus,
    run_status: RunStatus,
    failed_stage: Optional[PipelineStage] = None,
) -> RunState:
    statuses = dict(state.stage_statuses)
    statuses[stage] = stage_status
    return RunState(
        status=run_status,
        current_stage=stage,
        stage_statuses=MappingProxyType(statuses),
        failed_stage=failed_stage,
    )


def _reject(state: RunState, event: RunEvent, why: str) -> InvalidTransitionError:
    return InvalidTransitionError(
        f"{type(event).__name__} not allowed (run={state.status.value}, "
        f"stage={state.current_stage.value if state.current_stage else None}): {why}"
    )


def transition(state: RunState, event: RunEvent) -> RunState:
    """Apply an event to a run state.

    Raises:
        InvalidTransitionError: If the event is not legal in ``state``
    """
    if state.is_terminal:
        raise _reject(state, event, "run is terminal")

    if isinstance(event, StageStarted):
        if any(s == StageStatus.RUNNING for s in state.stage_statuses.values()):
            raise _reject(state, event, "another stage is running")
        if state.next_stage() != event.stage:
            raise _reject(state, event, f"next stage is {state.next_stage()}")
        return _with_stage(state, event.stage, StageStatus.RUNNING, RunStatus.RUNNING)

    if isinstance(event, StageCompleted):
        if state.stage_statuses[event.stage] != StageStatus.RUNNING:
            raise _reject(state, event, f"{event.stage.value} is not running")
        return _with_stage(state, event.stage, StageStatus.COMPLETED, RunStatus.RUNNING)

    if isinstance(event, StageSkipped):
        current = state.stage_statuses[event.stage]
        skippable = current == StageStatus.RUNNING or (
            current == StageStatus.PENDING
            and state.next_stage() == event.stage
            and StageStatus.RUNNING not in state.stage_statuses.values()
        )
        if not skippable:
            raise _reject(state, event, f"{event.stage.value} cannot be skipped")
        return _with_stage(state, event.stage, StageStatus.SKIPPED, RunStatus.RUNNING)

    if isinstance(event, StageFailed):
        current = state.stage_statuses[event.stage]
        if current != StageStatus.RUNNING and not (
            current == StageStatus.PENDING and state.next_stage() == event.stage
        ):
            raise _reject(state, event, f"{event.stage.value} is not active")
        return _with_stage(
            state, event.stage, StageStatus.FAILED, RunStatus.FAILED, failed_stage=event.stage
        )

    if isinstance(event, RunCompleted):
        if not all(state.stage_statuses[s] in _DONE for s in STAGE_ORDER):
            raise _reject(state, event, "not every stage is completed or skipped")
        return RunState(
            status=RunStatus.COMPLETED,
            current_stage=state.current_stage,
            stage_statuses=state.stage_statuses,
        )

    raise _reject(state, event, "unknown event")
