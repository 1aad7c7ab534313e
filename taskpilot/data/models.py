"""
TaskPilot — Data Models.

Tasks, projects and remembered facts persist in SQLite; calendar events
live with the calendar provider and never touch these tables. Every row
belongs to exactly one user.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class TaskRecord:
    """A stored task.

    `due_date` is an ISO day (YYYY-MM-DD) or None for backlog tasks.
    `task_type` is "day_task" when bound to a date, otherwise "anytime".
    """

    id: int
    user_id: str
    title: str
    description: str | None = None
    priority: str = "medium"           # low | medium | high
    status: str = "open"               # open | done
    due_date: str | None = None
    estimated_minutes: int | None = None
    focus: str | None = None
    owner: str | None = None
    area: str | None = None
    project_id: int | None = None
    kind: str | None = None            # backlog | day
    task_type: str = "anytime"
    location: str | None = None
    created_at: str = ""


@dataclass
class Project:
    """A named group of tasks, e.g. "Kitchen remodel"."""

    id: int
    user_id: str
    name: str
    area: str | None = None
    notes: str | None = None
    is_archived: bool = field(default=False)


@dataclass
class InfoItem:
    """A remembered fact, keyed by label (e.g. "wifi password")."""

    id: int
    user_id: str
    label: str
    value: str
    updated_at: str = ""
