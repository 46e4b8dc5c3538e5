"""Side effects of an accepted pipeline action.

Runs inside the caller's unit of work, so the created rows, their timeline
event and the action's new execution status commit or roll back together.
"""

from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError

from legal_intel.pipeline.action_payloads import (
    CreateDeadlinePayload,
    CreateTaskPayload,
    parse_action_payload,
)
from legal_intel.utils.logging import get_logger

LOGGER = get_logger(__name__)


@dataclass(frozen=True)
class ExecutionOutcome:
    executed: bool
    error: Optional[str] = None


class ActionExecutor:
    """Creates tasks and calendar events for accepted actions.

    Action types other than ``create_task`` and ``create_deadline`` have no
    side effect and report ``executed=False`` without an error.
    """

    async def execute(self, uow, action, user_id: Optional[UUID]) -> ExecutionOutcome:
        try:
            payload = parse_action_payload(action.action_type, action.action_payload)
        except PydanticValidationError:
            LOGGER.warning(
                f"Action {action.id} has unknown type {action.action_type!r}",
                extra={"action_id": str(action.id)},
            )
            return ExecutionOutcome(executed=False)

        if isinstance(payload, CreateTaskPayload):
            return await self._create_tasks(uow, action, payload, user_id)
        if isinstance(payload, CreateDeadlinePayload):
            return await self._create_deadline(uow, action, payload, user_id)
        return ExecutionOutcome(executed=False)

    async def _create_tasks(
        self, uow, action, payload: CreateTaskPayload, user_id: Optional[UUID]
    ) -> ExecutionOutcome:
        specs = payload.tasks_to_create()
        if not specs:
            return ExecutionOutcome(executed=False, error="No tasks in actionPayload")

        for spec in specs:
            await uow.tasks.create(
                matter_id=action.matter_id,
                title=spec.title,
                description=spec.description,
                priority=spec.priority,
                status="pending",
                due_date=spec.due_date,
                created_by=user_id,
            )

        await uow.timeline.record(
            event_type="task_created",
            title=f"Created {len(specs)} task(s) from pipeline action",
            matter_id=action.matter_id,
            metadata={
                "count": len(specs),
                "actionType": action.action_type,
                "actionId": str(action.id),
            },
            actor_id=user_id,
        )
        LOGGER.info(f"Action {action.id} created {len(specs)} task(s)")
        return ExecutionOutcome(executed=True)

    async def _create_deadline(
        self, uow, action, payload: CreateDeadlinePayload, user_id: Optional[UUID]
    ) -> ExecutionOutcome:
        if not payload.title or payload.start_at is None:
            return ExecutionOutcome(executed=False, error="Missing title or startAt in actionPayload")

        await uow.calendar.create(
            matter_id=action.matter_id,
            title=payload.title,
            description=payload.description,
            event_type=payload.event_type,
            start_at=payload.start_at,
            end_at=payload.end_at,
            all_day=payload.all_day,
            priority=payload.priority,
            created_by=user_id,
        )
        await uow.timeline.record(
            event_type="calendar_event_created",
            title=f'Created deadline "{payload.title}" from pipeline action',
            matter_id=action.matter_id,
            metadata={
                "actionType": action.action_type,
                "actionId": str(action.id),
                "startAt": payload.start_at.isoformat(),
            },
            actor_id=user_id,
        )
        LOGGER.info(f"Action {action.id} created deadline {payload.title!r}")
        return ExecutionOutcome(executed=True)
