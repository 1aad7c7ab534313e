"""Shared test fixtures and configuration.

Sets up fake environment variables before any taskpilot imports, and
provides temp-file SQLite stores plus an in-memory calendar.
"""

import os

# Patch env vars BEFORE any taskpilot imports
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "fake-token-for-tests")
os.environ.setdefault("LLM_API_KEY", "fake-llm-key-for-tests")
os.environ.setdefault("LLM_PROVIDER", "gemini")
os.environ.setdefault("OPENAI_API_KEY", "fake-openai-key-for-tests")
os.environ.setdefault("ALLOWED_USER_IDS", "12345")
os.environ.setdefault("DATABASE_PATH", ":memory:")
os.environ.setdefault("TIMEZONE", "America/New_York")
os.environ.setdefault("ASSISTANT_USER_ID", "")

from datetime import datetime
from zoneinfo import ZoneInfo

import pytest

from taskpilot.ports.calendar_port import CalendarEvent

NY = ZoneInfo("America/New_York")


class FakeCalendar:
    """In-memory CalendarPort. Events are kept in insertion order."""

    def __init__(self, events=None):
        self.events: list[CalendarEvent] = list(events or [])
        self.list_calls: list[tuple[str, str]] = []
        self.updates: list[tuple[str, str, str]] = []
        self.deleted: list[str] = []
        self._next_id = 1

    async def create_event(self, title, start_iso, end_iso, location=None, description=None):
        event = CalendarEvent(
            id=f"evt-{self._next_id}", title=title, start_iso=start_iso, end_iso=end_iso,
            location=location, description=description,
        )
        self._next_id += 1
        self.events.append(event)
        return event

    async def list_events(self, time_min_iso, time_max_iso):
        self.list_calls.append((time_min_iso, time_max_iso))
        return list(self.events)

    async def update_event_time(self, event_id, start_iso, end_iso):
        self.updates.append((event_id, start_iso, end_iso))
        for event in self.events:
            if event.id == event_id:
                event.start_iso, event.end_iso = start_iso, end_iso
                return event
        raise KeyError(event_id)

    async def delete_event(self, event_id):
        self.deleted.append(event_id)
        self.events = [e for e in self.events if e.id != event_id]


@pytest.fixture
def fake_calendar():
    return FakeCalendar()


@pytest.fixture
def task_db(tmp_path):
    """Return a TaskDB instance backed by a temp file."""
    from taskpilot.data.db import TaskDB
    return TaskDB(db_path=str(tmp_path / "test_taskpilot.db"))


@pytest.fixture
def project_db(tmp_path):
    """Return a ProjectDB instance backed by a temp file."""
    from taskpilot.data.db import ProjectDB
    return ProjectDB(db_path=str(tmp_path / "test_taskpilot.db"))


@pytest.fixture
def info_db(tmp_path):
    """Return an InfoDB instance backed by a temp file."""
    from taskpilot.data.db import InfoDB
    return InfoDB(db_path=str(tmp_path / "test_taskpilot.db"))


@pytest.fixture
def now():
    """A fixed 'now': Tuesday 2025-04-15 09:00 in New York."""
    return datetime(2025, 4, 15, 9, 0, tzinfo=NY)


@pytest.fixture
def ctx(now):
    from taskpilot.core.dispatcher import DispatchContext
    return DispatchContext(user_id="user-a", user_email="a@example.com", timezone="America/New_York", now=now)
