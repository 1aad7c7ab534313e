"""Store ports — interfaces for the task, project and remembered-info stores.

Stores are synchronous (SQLite in-process). Every method is scoped to a
user id; no store method ever touches another user's rows.
"""

from __future__ import annotations

from typing import Protocol

from taskpilot.data.models import InfoItem, Project, TaskRecord


class StoreError(Exception):
    """Raised when a store rejects an operation (bad input, unknown field)."""


class TaskStore(Protocol):
    def add_task(
        self,
        user_id: str,
        title: str,
        description: str | None = None,
        priority: str = "medium",
        due_date: str | None = None,
        estimated_minutes: int | None = None,
        focus: str | None = None,
        owner: str | None = None,
        area: str | None = None,
        project_id: int | None = None,
        kind: str | None = None,
        task_type: str | None = None,
        location: str | None = None,
    ) -> TaskRecord: ...

    def get_task(self, user_id: str, task_id: int) -> TaskRecord | None: ...

    def list_tasks(
        self,
        user_id: str,
        status: str | None = None,
        due_date: str | None = None,
        focus: str | None = None,
        area: str | None = None,
    ) -> list[TaskRecord]: ...

    def update_tasks(self, user_id: str, task_ids: list[int], fields: dict) -> int: ...

    def delete_tasks(self, user_id: str, task_ids: list[int]) -> int: ...

    def delete_all_tasks(self, user_id: str) -> int: ...


class ProjectStore(Protocol):
    def create_or_get(self, user_id: str, name: str, area: str | None = None) -> Project: ...

    def get_by_name(self, user_id: str, name: str) -> Project | None: ...

    def archive(self, user_id: str, project_id: int) -> None: ...


class InfoStore(Protocol):
    def upsert(self, user_id: str, label: str, value: str) -> InfoItem: ...

    def lookup(self, user_id: str, label: str) -> InfoItem | None: ...
