"""Calendar port — abstract interface for calendar operations.

Core modules depend on this protocol, never on a specific provider.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


class CalendarError(Exception):
    """Raised when any calendar provider operation fails."""


@dataclass
class CalendarEvent:
    """A calendar entry as seen by the core.

    `start_iso` / `end_iso` are ISO-8601 datetimes, or bare dates for
    all-day entries. `end_iso` may be None when the provider omits it.
    """

    id: str
    title: str
    start_iso: str
    end_iso: str | None = None
    location: str | None = None
    description: str | None = None


class CalendarPort(Protocol):
    """Abstract calendar interface used by core modules."""

    async def create_event(
        self,
        title: str,
        start_iso: str,
        end_iso: str,
        location: str | None = None,
        description: str | None = None,
    ) -> CalendarEvent: ...

    async def list_events(
        self, time_min_iso: str, time_max_iso: str
    ) -> list[CalendarEvent]: ...

    async def update_event_time(
        self, event_id: str, start_iso: str, end_iso: str
    ) -> CalendarEvent: ...

    async def delete_event(self, event_id: str) -> None: ...
