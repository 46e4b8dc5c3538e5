"""Typed views of ``PipelineAction.action_payload``, keyed by action type.

Payloads are written by taxonomy authors and by the proposal logic, so
parsing is lenient: unknown priorities fall back to ``medium``, unparseable
dates become ``None`` and non-string text fields are dropped. Whether the
result is actionable is the executor's decision.
"""

from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator

from legal_intel.pipeline.enums import ActionType
from legal_intel.utils.dates import parse_datetime

MAX_TASKS_PER_ACTION = 10

TASK_PRIORITIES = ("low", "medium", "high", "urgent")
CALENDAR_PRIORITIES = ("low", "medium", "high", "critical")
EVENT_TYPES = (
    "hearing",
    "deadline",
    "meeting",
    "reminder",
    "limitation_date",
    "filing_deadline",
    "other",
)


def _text_or_none(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def _date_or_none(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        return parse_datetime(value)
    return None


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class TaskSpec(_Payload):
    """One task to create."""

    title: str = "Untitled task"
    description: Optional[str] = None
    priority: str = "medium"
    due_date: Optional[datetime] = Field(None, alias="dueDate")

    @field_validator("title", mode="before")
    @classmethod
    def validate_title(cls, v: Any) -> str:
        return v if isinstance(v, str) and v.strip() else "Untitled task"

    @field_validator("description", mode="before")
    @classmethod
    def validate_description(cls, v: Any) -> Optional[str]:
        return _text_or_none(v)

    @field_validator("priority", mode="before")
    @classmethod
    def validate_priority(cls, v: Any) -> str:
        return v if v in TASK_PRIORITIES else "medium"

    @field_validator("due_date", mode="before")
    @classmethod
    def validate_due_date(cls, v: Any) -> Optional[datetime]:
        return _date_or_none(v)


class CreateTaskPayload(_Payload):
    """``{"tasks": [...]}`` or a single task given inline."""

    action_type: Literal["create_task"] = Field(ActionType.CREATE_TASK.value, alias="actionType")
    tasks: List[TaskSpec] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def single_task_form(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        tasks = data.get("tasks")
        if isinstance(tasks, list) and tasks:
            data = {**data, "tasks": [t for t in tasks if isinstance(t, dict)]}
        elif data.get("title"):
            data = {**data, "tasks": [data]}
        else:
            data = {**data, "tasks": []}
        return data

    def tasks_to_create(self) -> List[TaskSpec]:
        return self.tasks[:MAX_TASKS_PER_ACTION]


class CreateDeadlinePayload(_Payload):
    action_type: Literal["create_deadline"] = Field(ActionType.CREATE_DEADLINE.value, alias="actionType")
    title: Optional[str] = None
    description: Optional[str] = None
    start_at: Optional[datetime] = Field(None, alias="startAt")
    end_at: Optional[datetime] = Field(None, alias="endAt")
    all_day: bool = Field(False, alias="allDay")
    event_type: str = Field("deadline", alias="eventType")
    priority: str = "medium"

    @field_validator("title", "description", mode="before")
    @classmethod
    def validate_text(cls, v: Any) -> Optional[str]:
        return _text_or_none(v)

    @field_validator("start_at", "end_at", mode="before")
    @classmethod
    def validate_dates(cls, v: Any) -> Optional[datetime]:
        return _date_or_none(v)

    @field_validator("all_day", mode="before")
    @classmethod
    def validate_all_day(cls, v: Any) -> bool:
        return v if isinstance(v, bool) else False

    @field_validator("event_type", mode="before")
    @classmethod
    def validate_event_type(cls, v: Any) -> str:
        return v if v in EVENT_TYPES else "deadline"

    @field_validator("priority", mode="before")
    @classmethod
    def validate_priority(cls, v: Any) -> str:
        return v if v in CALENDAR_PRIORITIES else "medium"


class UnhandledPayload(_Payload):
    """Action types without a side effect; the raw payload is kept as-is."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    action_type: Literal[
        "update_field",
        "send_notification",
        "flag_risk",
        "request_review",
        "ai_recommendation",
    ] = Field(alias="actionType")


ActionPayload = Annotated[
    Union[CreateTaskPayload, CreateDeadlinePayload, UnhandledPayload],
    Field(discriminator="action_type"),
]

_ADAPTER = TypeAdapter(ActionPayload)


def parse_action_payload(action_type: str, payload: Optional[Dict[str, Any]]):
    """Parse a stored payload into its tagged model.

    Raises:
        pydantic.ValidationError: If ``action_type`` is not a known action type
    """
    data = dict(payload) if isinstance(payload, dict) else {}
    data["actionType"] = action_type
    return _ADAPTER.validate_python(data)
