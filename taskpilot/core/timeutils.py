"""ISO-8601 helpers shared by the dispatcher, resolver and day planner."""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, tzinfo
from zoneinfo import ZoneInfo


def get_tz(name: str | None) -> tzinfo:
    """Return a ZoneInfo for `name`, falling back to the configured timezone."""
    if not name:
        from taskpilot.config import settings

        name = settings.TIMEZONE
    return ZoneInfo(name)


def is_all_day(value: str) -> bool:
    """True only for a bare ISO date (YYYY-MM-DD), the form of all-day entries."""
    text = value.strip()
    if len(text) != 10:
        return False
    try:
        date.fromisoformat(text)
    except ValueError:
        return False
    return True


def parse_iso(value: str, tz: tzinfo) -> datetime:
    """Parse an ISO date or datetime into an aware datetime.

    Naive values are interpreted in `tz`; a trailing 'Z' means UTC.
    Raises ValueError on unparseable input.
    """
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    if is_all_day(text):
        parsed = datetime.combine(date.fromisoformat(text), time.min)
    else:
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=tz)
    return parsed


def parse_date(value: str | None, today: date) -> date:
    """Resolve 'today', 'tomorrow', 'yesterday' or an ISO date; default today."""
    if not value:
        return today
    text = value.strip().lower()
    if text == "today":
        return today
    if text == "tomorrow":
        return today + timedelta(days=1)
    if text == "yesterday":
        return today - timedelta(days=1)
    return date.fromisoformat(text[:10])


def day_bounds(day: date, tz: tzinfo) -> tuple[datetime, datetime]:
    """Return [start, end) of `day` in `tz`."""
    start = datetime.combine(day, time.min, tzinfo=tz)
    return start, start + timedelta(days=1)


def format_clock(dt: datetime) -> str:
    """12-hour clock label, e.g. '7:00 PM'."""
    return dt.strftime("%I:%M %p").lstrip("0")


def format_day(day: date) -> str:
    """Short day label, e.g. 'Tue Apr 15'."""
    return f"{day.strftime('%a %b')} {day.day}"
