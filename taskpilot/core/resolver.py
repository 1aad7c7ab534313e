"""
TaskPilot — Entity Resolver.

Maps fuzzy natural-language references ("dinner with Jasper", "taxes") onto
concrete task records and calendar events.

Matching is a case-insensitive substring test evaluated in store order; the
first hit wins. There is no ranking, so "meeting" may pick a different event
than the one the user had in mind when several titles contain it.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, Iterable, TypeVar

from taskpilot.ports.calendar_port import CalendarEvent, CalendarPort

logger = logging.getLogger(__name__)

T = TypeVar("T")

EVENT_LOOKBEHIND = timedelta(days=1)
EVENT_LOOKAHEAD = timedelta(days=30)


def matches(query: str | None, title: str | None) -> bool:
    """True when `title` contains `query`, ignoring case. Blank query never matches."""
    if not query or not query.strip() or not title:
        return False
    return query.strip().casefold() in title.casefold()


def find_first(query: str | None, candidates: Iterable[T], title_of: Callable[[T], str | None]) -> T | None:
    for candidate in candidates:
        if matches(query, title_of(candidate)):
            return candidate
    return None


def find_all(query: str | None, candidates: Iterable[T], title_of: Callable[[T], str | None]) -> list[T]:
    return [c for c in candidates if matches(query, title_of(c))]


async def find_event(calendar: CalendarPort, query: str | None, now: datetime) -> CalendarEvent | None:
    """Find the first event in [now - 1 day, now + 30 days] whose title matches."""
    if not query or not query.strip():
        return None
    time_min = (now - EVENT_LOOKBEHIND).isoformat()
    time_max = (now + EVENT_LOOKAHEAD).isoformat()
    events = await calendar.list_events(time_min, time_max)
    event = find_first(query, events, lambda e: e.title)
    if event is None:
        logger.info("No event matching %r between %s and %s", query, time_min, time_max)
    return event
