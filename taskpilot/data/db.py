"""
TaskPilot — SQLite stores.

Tasks, projects and remembered info persist in one SQLite file. Every query
is filtered by user_id: no method reads or writes another user's rows.
"""

from __future__ import annotations

import abc
import logging
import sqlite3
from datetime import datetime
from pathlib import Path

from taskpilot.data.models import InfoItem, Project, TaskRecord
from taskpilot.ports.store_port import StoreError

logger = logging.getLogger(__name__)


class _SQLiteStore(abc.ABC):
    """Connection handling shared by the stores below."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from taskpilot.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    @abc.abstractmethod
    def _init_db(self) -> None:
        """Create tables and apply additive migrations."""


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------

# Patch keys accepted by update_tasks → column names
_TASK_PATCH_COLUMNS = {
    "title": "title",
    "description": "description",
    "priority": "priority",
    "status": "status",
    "due_date_iso": "due_date",
    "due_date": "due_date",
    "estimated_minutes": "estimated_minutes",
    "focus": "focus",
    "area": "area",
    "task_type": "task_type",
    "project_id": "project_id",
}


class TaskDB(_SQLiteStore):
    """SQLite-backed task list."""

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS tasks (
                    id                INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id           TEXT    NOT NULL,
                    title             TEXT    NOT NULL,
                    description       TEXT,
                    priority          TEXT    NOT NULL DEFAULT 'medium',
                    status            TEXT    NOT NULL DEFAULT 'open',
                    due_date          TEXT,
                    estimated_minutes INTEGER,
                    focus             TEXT,
                    owner             TEXT,
                    area              TEXT,
                    project_id        INTEGER,
                    created_at        TEXT    NOT NULL
                )
            """)
            # Migrate existing DBs: add new columns if missing
            existing_cols = {
                row[1] for row in conn.execute("PRAGMA table_info(tasks)").fetchall()
            }
            if "kind" not in existing_cols:
                conn.execute("ALTER TABLE tasks ADD COLUMN kind TEXT")
            if "task_type" not in existing_cols:
                conn.execute(
                    "ALTER TABLE tasks ADD COLUMN task_type TEXT NOT NULL DEFAULT 'anytime'"
                )
            if "location" not in existing_cols:
                conn.execute("ALTER TABLE tasks ADD COLUMN location TEXT")
        logger.debug("Tasks table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> TaskRecord:
        return TaskRecord(
            id=row["id"],
            user_id=row["user_id"],
            title=row["title"],
            description=row["description"],
            priority=row["priority"],
            status=row["status"],
            due_date=row["due_date"],
            estimated_minutes=row["estimated_minutes"],
            focus=row["focus"],
            owner=row["owner"],
            area=row["area"],
            project_id=row["project_id"],
            kind=row["kind"],
            task_type=row["task_type"],
            location=row["location"],
            created_at=row["created_at"],
        )

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
    ) -> TaskRecord:
        """Insert a task. task_type defaults to day_task when a due date is set."""
        if not title or not title.strip():
            raise StoreError("Task title must not be empty")
        if due_date:
            due_date = due_date[:10]
        if task_type is None:
            task_type = "day_task" if due_date else "anytime"
        now = datetime.now().isoformat()

        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO tasks
                    (user_id, title, description, priority, status, due_date,
                     estimated_minutes, focus, owner, area, project_id,
                     kind, task_type, location, created_at)
                VALUES (?, ?, ?, ?, 'open', ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    user_id, title.strip(), description, priority, due_date,
                    estimated_minutes, focus, owner, area, project_id,
                    kind, task_type, location, now,
                ),
            )
            task_id = cursor.lastrowid

        logger.info("Task added: #%d '%s' for user %s", task_id, title, user_id)
        return TaskRecord(
            id=task_id,
            user_id=user_id,
            title=title.strip(),
            description=description,
            priority=priority,
            status="open",
            due_date=due_date,
            estimated_minutes=estimated_minutes,
            focus=focus,
            owner=owner,
            area=area,
            project_id=project_id,
            kind=kind,
            task_type=task_type,
            location=location,
            created_at=now,
        )

    def get_task(self, user_id: str, task_id: int) -> TaskRecord | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM tasks WHERE id = ? AND user_id = ?", (task_id, user_id)
            ).fetchone()
        if row is None:
            return None
        return self._row_to_task(row)

    def list_tasks(
        self,
        user_id: str,
        status: str | None = None,
        due_date: str | None = None,
        focus: str | None = None,
        area: str | None = None,
    ) -> list[TaskRecord]:
        """List a user's tasks in insertion order, optionally filtered."""
        query = "SELECT * FROM tasks WHERE user_id = ?"
        params: list = [user_id]
        if status is not None:
            query += " AND status = ?"
            params.append(status)
        if due_date is not None:
            query += " AND due_date = ?"
            params.append(due_date)
        if focus is not None:
            query += " AND focus = ? COLLATE NOCASE"
            params.append(focus)
        if area is not None:
            query += " AND area = ? COLLATE NOCASE"
            params.append(area)
        query += " ORDER BY id"

        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_task(r) for r in rows]

    def update_tasks(self, user_id: str, task_ids: list[int], fields: dict) -> int:
        """Apply `fields` to the given tasks. Returns the number of rows changed."""
        if not task_ids or not fields:
            return 0
        unknown = set(fields) - set(_TASK_PATCH_COLUMNS)
        if unknown:
            raise StoreError(f"Unknown task field(s): {', '.join(sorted(unknown))}")

        assignments = {_TASK_PATCH_COLUMNS[k]: v for k, v in fields.items()}
        if assignments.get("due_date"):
            assignments["due_date"] = str(assignments["due_date"])[:10]
        set_clause = ", ".join(f"{col} = ?" for col in assignments)
        placeholders = ", ".join("?" for _ in task_ids)

        with self._connect() as conn:
            cursor = conn.execute(
                f"UPDATE tasks SET {set_clause} WHERE user_id = ? AND id IN ({placeholders})",
                [*assignments.values(), user_id, *task_ids],
            )
        logger.info("Updated %d task(s) for user %s: %s", cursor.rowcount, user_id, assignments)
        return cursor.rowcount

    def delete_tasks(self, user_id: str, task_ids: list[int]) -> int:
        if not task_ids:
            return 0
        placeholders = ", ".join("?" for _ in task_ids)
        with self._connect() as conn:
            cursor = conn.execute(
                f"DELETE FROM tasks WHERE user_id = ? AND id IN ({placeholders})",
                [user_id, *task_ids],
            )
        logger.info("Deleted %d task(s) for user %s", cursor.rowcount, user_id)
        return cursor.rowcount

    def delete_all_tasks(self, user_id: str) -> int:
        """Delete every task owned by `user_id` (and only that user)."""
        if not user_id:
            raise StoreError("delete_all_tasks requires a user id")
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM tasks WHERE user_id = ?", (user_id,))
        logger.info("Deleted all %d task(s) for user %s", cursor.rowcount, user_id)
        return cursor.rowcount


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------


class ProjectDB(_SQLiteStore):
    """SQLite-backed projects. Names are unique per user, case-insensitively."""

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS projects (
                    id          INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id     TEXT    NOT NULL,
                    name        TEXT    NOT NULL,
                    area        TEXT,
                    notes       TEXT,
                    is_archived INTEGER NOT NULL DEFAULT 0
                )
            """)
        logger.debug("Projects table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_project(row: sqlite3.Row) -> Project:
        return Project(
            id=row["id"],
            user_id=row["user_id"],
            name=row["name"],
            area=row["area"],
            notes=row["notes"],
            is_archived=bool(row["is_archived"]),
        )

    def get_by_name(self, user_id: str, name: str) -> Project | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM projects WHERE user_id = ? AND name = ? COLLATE NOCASE",
                (user_id, name.strip()),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_project(row)

    def create_or_get(self, user_id: str, name: str, area: str | None = None) -> Project:
        """Return the user's project called `name`, creating it if needed."""
        if not name or not name.strip():
            raise StoreError("Project name must not be empty")
        existing = self.get_by_name(user_id, name)
        if existing is not None:
            return existing

        with self._connect() as conn:
            cursor = conn.execute(
                "INSERT INTO projects (user_id, name, area) VALUES (?, ?, ?)",
                (user_id, name.strip(), area),
            )
            project_id = cursor.lastrowid
        logger.info("Project created: #%d '%s' for user %s", project_id, name, user_id)
        return Project(id=project_id, user_id=user_id, name=name.strip(), area=area)

    def archive(self, user_id: str, project_id: int) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE projects SET is_archived = 1 WHERE id = ? AND user_id = ?",
                (project_id, user_id),
            )
        logger.info("Project #%d archived for user %s", project_id, user_id)


# ---------------------------------------------------------------------------
# Remembered info
# ---------------------------------------------------------------------------


class InfoDB(_SQLiteStore):
    """Key/value facts the user asked the assistant to remember."""

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS info_items (
                    id         INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id    TEXT NOT NULL,
                    label      TEXT NOT NULL,
                    value      TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    UNIQUE (user_id, label)
                )
            """)
        logger.debug("Info table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_item(row: sqlite3.Row) -> InfoItem:
        return InfoItem(
            id=row["id"],
            user_id=row["user_id"],
            label=row["label"],
            value=row["value"],
            updated_at=row["updated_at"],
        )

    def upsert(self, user_id: str, label: str, value: str) -> InfoItem:
        """Store `value` under `label`, replacing any previous value."""
        label = label.strip().lower()
        now = datetime.now().isoformat()
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO info_items (user_id, label, value, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT (user_id, label)
                DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                """,
                (user_id, label, value, now),
            )
            row = conn.execute(
                "SELECT * FROM info_items WHERE user_id = ? AND label = ?",
                (user_id, label),
            ).fetchone()
        logger.info("Remembered '%s' for user %s", label, user_id)
        return self._row_to_item(row)

    def lookup(self, user_id: str, label: str) -> InfoItem | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM info_items WHERE user_id = ? AND label = ?",
                (user_id, label.strip().lower()),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_item(row)
