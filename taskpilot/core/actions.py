"""
TaskPilot — Action Schema.

The closed set of operations the assistant can perform. Every other module
is built around these models: the normalizer produces them, the dispatcher
consumes them. Each action kind carries only the fields meaningful to it and
is tagged by its `type` literal.
"""

from __future__ import annotations

from typing import Literal, Union

from pydantic import BaseModel, Field, field_validator

TaskPriority = Literal["low", "medium", "high"]
TaskKind = Literal["backlog", "day"]
TaskType = Literal["anytime", "day_task"]

PRIORITIES: tuple[str, ...] = ("low", "medium", "high")


def _truncate_date(value: object) -> str | None:
    """Reduce any ISO date/datetime string to day precision (YYYY-MM-DD)."""
    if value is None:
        return None
    text = str(value).strip()
    return text[:10] or None


def _optional_text(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


# ---------------------------------------------------------------------------
# Payload models
# ---------------------------------------------------------------------------


class TaskInput(BaseModel):
    """A task as requested by the user, before it becomes a stored row.

    JSON example:
    {
        "title": "File taxes",
        "priority": "high",
        "due_date_iso": "2025-04-15",
        "estimated_minutes": 90,
        "kind": "day"
    }
    """

    title: str
    description: str | None = None
    priority: TaskPriority = "medium"
    due_date_iso: str | None = None
    estimated_minutes: int | None = None
    focus: str | None = None
    owner: str | None = None
    area: str | None = None
    project_name: str | None = None
    kind: TaskKind | None = None
    task_type: TaskType | None = None
    location: str | None = None

    @field_validator("title", mode="before")
    @classmethod
    def require_title(cls, v: object) -> str:
        text = "" if v is None else str(v).strip()
        if not text:
            raise ValueError("task title must not be empty")
        return text

    @field_validator("priority", mode="before")
    @classmethod
    def coerce_priority(cls, v: object) -> str:
        text = str(v).strip().lower() if v is not None else ""
        return text if text in PRIORITIES else "medium"

    @field_validator("due_date_iso", mode="before")
    @classmethod
    def truncate_due(cls, v: object) -> str | None:
        return _truncate_date(v)

    @field_validator("estimated_minutes", mode="before")
    @classmethod
    def coerce_minutes(cls, v: object) -> int | None:
        if v is None or isinstance(v, bool):
            return None
        try:
            minutes = int(float(v))
        except (TypeError, ValueError, OverflowError):
            return None
        return minutes if minutes > 0 else None

    @field_validator("kind", "task_type", mode="before")
    @classmethod
    def drop_unknown_enum(cls, v: object, info) -> str | None:
        allowed = ("backlog", "day") if info.field_name == "kind" else ("anytime", "day_task")
        text = str(v).strip().lower() if v is not None else ""
        return text if text in allowed else None

    @field_validator("description", "focus", "owner", "area", "project_name", "location", mode="before")
    @classmethod
    def clean_text(cls, v: object) -> str | None:
        return _optional_text(v)


class EventInput(BaseModel):
    """A calendar event with fixed start and end.

    `assumptions` records what was inferred rather than stated,
    e.g. {"time": "defaulted evening 7pm"}.
    """

    title: str
    start_iso: str
    end_iso: str
    location: str | None = None
    description: str | None = None
    assumptions: dict[str, str] = Field(default_factory=dict)

    @field_validator("title", "start_iso", "end_iso", mode="before")
    @classmethod
    def require_text(cls, v: object) -> str:
        text = "" if v is None else str(v).strip()
        if not text:
            raise ValueError("must not be empty")
        return text

    @field_validator("location", "description", mode="before")
    @classmethod
    def clean_text(cls, v: object) -> str | None:
        return _optional_text(v)

    @field_validator("assumptions", mode="before")
    @classmethod
    def stringify_assumptions(cls, v: object) -> dict[str, str]:
        if not isinstance(v, dict):
            return {}
        return {str(k): str(val) for k, val in v.items() if val is not None}


class EmailInput(BaseModel):
    to: str | None = None
    subject: str | None = None
    body: str | None = None
    instructions: str | None = None
    thread_id: str | None = None
    message_id: str | None = None


class TaskSelector(BaseModel):
    """Which tasks an update applies to: exact id, title fragment, or area."""

    id: str | None = None
    match_title: str | None = None
    area: str | None = None


class TaskPatch(BaseModel):
    """Fields to change on matched tasks. Unset fields are left alone."""

    title: str | None = None
    description: str | None = None
    priority: TaskPriority | None = None
    status: str | None = None
    due_date_iso: str | None = None
    estimated_minutes: int | None = None
    focus: str | None = None
    area: str | None = None
    task_type: TaskType | None = None

    @field_validator("priority", mode="before")
    @classmethod
    def coerce_priority(cls, v: object) -> str | None:
        text = str(v).strip().lower() if v is not None else ""
        return text if text in PRIORITIES else None

    @field_validator("task_type", mode="before")
    @classmethod
    def coerce_task_type(cls, v: object) -> str | None:
        text = str(v).strip().lower() if v is not None else ""
        return text if text in ("anytime", "day_task") else None

    @field_validator("due_date_iso", mode="before")
    @classmethod
    def truncate_due(cls, v: object) -> str | None:
        return _truncate_date(v)

    def to_fields(self) -> dict:
        """Return only the fields that were actually set."""
        return self.model_dump(exclude_none=True)


class InfoItemInput(BaseModel):
    label: str
    value: str

    @field_validator("label", "value", mode="before")
    @classmethod
    def require_text(cls, v: object) -> str:
        text = "" if v is None else str(v).strip()
        if not text:
            raise ValueError("must not be empty")
        return text


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


class CreateTasks(BaseModel):
    type: Literal["create_tasks"] = "create_tasks"
    tasks: list[TaskInput] = Field(min_length=1)


class UpdateTasks(BaseModel):
    type: Literal["update_tasks"] = "update_tasks"
    where: TaskSelector | None = None
    patch: TaskPatch = Field(default_factory=TaskPatch)


class UpdateTask(BaseModel):
    type: Literal["update_task"] = "update_task"
    task_id: str
    fields: TaskPatch = Field(default_factory=TaskPatch)


class DeleteTasks(BaseModel):
    type: Literal["delete_tasks"] = "delete_tasks"
    task_ids: list[str] = Field(default_factory=list)
    query: str | None = None
    delete_all: bool = False


class ListTasks(BaseModel):
    type: Literal["list_tasks"] = "list_tasks"
    day: str | None = None
    status: str | None = None
    focus: str | None = None
    area: str | None = None
    limit: int = 5


class CreateEvents(BaseModel):
    type: Literal["create_events"] = "create_events"
    events: list[EventInput] = Field(min_length=1)


class DeleteEvents(BaseModel):
    type: Literal["delete_events"] = "delete_events"
    event_ids: list[str] = Field(default_factory=list)
    query: str | None = None


class MoveEvent(BaseModel):
    type: Literal["move_event"] = "move_event"
    query: str | None = None
    new_start_iso: str | None = None
    shift_minutes: int | None = None


class ListEvents(BaseModel):
    type: Literal["list_events"] = "list_events"
    day: str | None = None


class PlanDay(BaseModel):
    type: Literal["plan_day"] = "plan_day"
    date_iso: str | None = None


class PlanWeek(BaseModel):
    type: Literal["plan_week"] = "plan_week"
    start_date_iso: str | None = None
    end_date_iso: str | None = None


class CreateProject(BaseModel):
    type: Literal["create_project"] = "create_project"
    name: str
    area: str | None = None


class AssignTasksToProject(BaseModel):
    type: Literal["assign_tasks_to_project"] = "assign_tasks_to_project"
    project_name: str
    task_titles: list[str] = Field(default_factory=list)
    area: str | None = None


class ArchiveProject(BaseModel):
    type: Literal["archive_project"] = "archive_project"
    name: str


class UpdateTaskType(BaseModel):
    type: Literal["update_task_type"] = "update_task_type"
    task_title: str
    task_type: TaskType
    date_iso: str | None = None


class Display(BaseModel):
    type: Literal["display"] = "display"
    mode: Literal["day", "week", "now"] = "day"
    start_iso: str | None = None
    end_iso: str | None = None


class SendEmail(BaseModel):
    type: Literal["send_email"] = "send_email"
    email: EmailInput


class DraftReply(BaseModel):
    type: Literal["draft_reply"] = "draft_reply"
    email: EmailInput


class RememberInfo(BaseModel):
    type: Literal["remember_info"] = "remember_info"
    items: list[InfoItemInput] = Field(min_length=1)


class LookupInfo(BaseModel):
    type: Literal["lookup_info"] = "lookup_info"
    labels: list[str] = Field(min_length=1)


class CheckAvailability(BaseModel):
    type: Literal["check_availability"] = "check_availability"
    day: str | None = None


Action = Union[
    CreateTasks, UpdateTasks, UpdateTask, DeleteTasks, ListTasks,
    CreateEvents, DeleteEvents, MoveEvent, ListEvents,
    PlanDay, PlanWeek,
    CreateProject, AssignTasksToProject, ArchiveProject, UpdateTaskType,
    Display, SendEmail, DraftReply,
    RememberInfo, LookupInfo, CheckAvailability,
]

ACTION_MODELS: dict[str, type[BaseModel]] = {
    model.model_fields["type"].default: model
    for model in Action.__args__
}
