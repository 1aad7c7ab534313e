"""Google Calendar adapter — implements CalendarPort for Google Calendar API.

All Google-specific logic lives here. Core modules never import this directly;
they depend on the CalendarPort protocol.
"""

from __future__ import annotations

import logging

from taskpilot.config import settings
from taskpilot.core.timeutils import is_all_day
from taskpilot.integrations.google_auth import get_calendar_service
from taskpilot.ports.calendar_port import CalendarError, CalendarEvent

logger = logging.getLogger(__name__)


def _time_field(value: str) -> dict:
    """Google wants {"date": ...} for all-day entries, {"dateTime": ...} otherwise."""
    value = value.strip()
    if is_all_day(value):
        return {"date": value}
    # RFC 3339 needs the 'T' separator; ISO also allows a space
    if len(value) > 10 and value[10] == " ":
        value = f"{value[:10]}T{value[11:]}"
    return {"dateTime": value, "timeZone": settings.TIMEZONE}



def _to_event(item: dict) -> CalendarEvent:
    start = item.get("start", {})
    end = item.get("end", {})
    return CalendarEvent(
        id=item.get("id", ""),
        title=item.get("summary", "(no title)"),
        start_iso=start.get("dateTime", start.get("date", "")),
        end_iso=end.get("dateTime", end.get("date")) or None,
        location=item.get("location"),
        description=item.get("description"),
    )


class GoogleCalendarAdapter:
    """Google Calendar implementation of CalendarPort."""

    def __init__(self, calendar_id: str = "primary", service=None) -> None:
        self._calendar_id = calendar_id
        self._service = service

    def _events(self):
        if self._service is None:
            self._service = get_calendar_service()
        return self._service.events()

    async def create_event(
        self,
        title: str,
        start_iso: str,
        end_iso: str,
        location: str | None = None,
        description: str | None = None,
    ) -> CalendarEvent:
        body: dict = {
            "summary": title,
            "start": _time_field(start_iso),
            "end": _time_field(end_iso),
        }
        if location:
            body["location"] = location
        if description:
            body["description"] = description

        try:
            created = self._events().insert(calendarId=self._calendar_id, body=body).execute()
        except Exception as exc:
            logger.error("Google Calendar API error: %s", exc)
            raise CalendarError(f"Failed to create event: {exc}") from exc

        logger.info("Event created: '%s' at %s — %s", title, start_iso, created.get("htmlLink", ""))
        return _to_event(created)

    async def list_events(self, time_min_iso: str, time_max_iso: str) -> list[CalendarEvent]:
        try:
            result = (
                self._events()
                .list(
                    calendarId=self._calendar_id,
                    timeMin=time_min_iso,
                    timeMax=time_max_iso,
                    singleEvents=True,
                    orderBy="startTime",
                )
                .execute()
            )
        except Exception as exc:
            logger.error("Failed to list events %s..%s: %s", time_min_iso, time_max_iso, exc)
            raise CalendarError(f"Failed to list events: {exc}") from exc

        events = [_to_event(item) for item in result.get("items", [])]
        logger.info("Found %d event(s) between %s and %s", len(events), time_min_iso, time_max_iso)
        return events

    async def update_event_time(self, event_id: str, start_iso: str, end_iso: str) -> CalendarEvent:
        body = {"start": _time_field(start_iso), "end": _time_field(end_iso)}
        try:
            updated = (
                self._events()
                .patch(calendarId=self._calendar_id, eventId=event_id, body=body)
                .execute()
            )
        except Exception as exc:
            logger.error("Failed to move event %s: %s", event_id, exc)
            raise CalendarError(f"Failed to update event: {exc}") from exc

        logger.info("Event %s moved to %s – %s", event_id, start_iso, end_iso)
        return _to_event(updated)

    async def delete_event(self, event_id: str) -> None:
        try:
            self._events().delete(calendarId=self._calendar_id, eventId=event_id).execute()
        except Exception as exc:
            logger.error("Failed to delete event with ID %s: %s", event_id, exc)
            raise CalendarError(f"Failed to delete event: {exc}") from exc
        logger.info("Event with ID %s deleted successfully.", event_id)
