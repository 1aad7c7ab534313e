"""
TaskPilot — Day Planner.

Interleaves fixed calendar events with flexible tasks to produce a
time-blocked schedule for one day (or a short run of days).

Placement rules:
  - Tasks due on the day go first, then undated backlog tasks ordered
    high → medium → low (stable within a priority).
  - Timed events are fixed. The cursor starts at the workday start and
    jumps past each event; every gap of at least 15 minutes is filled
    first-fit in queue order. A task that does not fit a gap stays queued
    for the next gap.
  - All-day events are shown but do not block time.
  - Whatever is left at the end of the workday is reported as unscheduled.

The planner only reads; it never writes tasks or events.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, tzinfo

from taskpilot.core.timeutils import day_bounds, get_tz, is_all_day, parse_date, parse_iso
from taskpilot.data.models import TaskRecord
from taskpilot.ports.calendar_port import CalendarEvent, CalendarPort
from taskpilot.ports.store_port import TaskStore

logger = logging.getLogger(__name__)

MIN_GAP = timedelta(minutes=15)
DEFAULT_TASK_MINUTES = 60
DEFAULT_EVENT_MINUTES = 60
MAX_WEEK_DAYS = 7

_PRIORITY_ORDER = {"high": 0, "medium": 1, "low": 2}


@dataclass
class PlannedBlock:
    start: datetime
    end: datetime
    label: str
    kind: str                      # "event" | "task"
    task_id: int | None = None
    all_day: bool = False


@dataclass
class DayPlan:
    date: date
    blocks: list[PlannedBlock] = field(default_factory=list)
    unscheduled: list[str] = field(default_factory=list)


@dataclass
class WeekPlan:
    days: list[DayPlan] = field(default_factory=list)
    unscheduled: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Pure scheduling
# ---------------------------------------------------------------------------


def _priority_rank(task: TaskRecord) -> int:
    return _PRIORITY_ORDER.get(task.priority or "medium", 1)


def _task_minutes(task: TaskRecord) -> int:
    return task.estimated_minutes if task.estimated_minutes and task.estimated_minutes > 0 else DEFAULT_TASK_MINUTES


def _event_blocks(day: date, events: list[CalendarEvent], tz: tzinfo) -> list[PlannedBlock]:
    """Convert events into blocks; missing or zero-length ends default to one hour."""
    blocks: list[PlannedBlock] = []
    for event in events:
        try:
            start = parse_iso(event.start_iso, tz)
            all_day = is_all_day(event.start_iso)
            if all_day:
                start, end = day_bounds(day, tz)
            elif event.end_iso and event.end_iso != event.start_iso:
                end = parse_iso(event.end_iso, tz)
            else:
                end = start + timedelta(minutes=DEFAULT_EVENT_MINUTES)
        except ValueError:
            logger.warning("Skipping event %s with unparseable time %r", event.id, event.start_iso)
            continue
        blocks.append(PlannedBlock(start=start, end=end, label=event.title, kind="event", all_day=all_day))
    return blocks


def _fill_gap(
    queue: list[TaskRecord], cursor: datetime, gap_end: datetime,
) -> tuple[datetime, list[PlannedBlock]]:
    """Place queued tasks first-fit into [cursor, gap_end). Placed tasks leave the queue."""
    placed: list[PlannedBlock] = []
    i = 0
    while i < len(queue) and gap_end - cursor >= MIN_GAP:
        task = queue[i]
        task_end = cursor + timedelta(minutes=_task_minutes(task))
        if task_end <= gap_end:
            placed.append(PlannedBlock(start=cursor, end=task_end, label=task.title, kind="task", task_id=task.id))
            cursor = task_end
            queue.pop(i)
        else:
            i += 1
    return cursor, placed


def schedule_day(
    day: date,
    events: list[CalendarEvent],
    day_tasks: list[TaskRecord],
    backlog: list[TaskRecord],
    tz: tzinfo,
    start_hour: int = 8,
    end_hour: int = 18,
) -> DayPlan:
    """Build a time-blocked plan for `day`. Pure: no I/O."""
    queue = list(day_tasks) + sorted(backlog, key=_priority_rank)

    event_blocks = _event_blocks(day, events, tz)
    timed = sorted((b for b in event_blocks if not b.all_day), key=lambda b: b.start)

    day_start = datetime.combine(day, time.min, tzinfo=tz)
    cursor = day_start + timedelta(hours=start_hour)
    workday_end = day_start + timedelta(hours=end_hour)

    task_blocks: list[PlannedBlock] = []
    for block in timed:
        cursor, placed = _fill_gap(queue, cursor, min(block.start, workday_end))
        task_blocks.extend(placed)
        cursor = max(cursor, block.end)
    cursor, placed = _fill_gap(queue, cursor, workday_end)
    task_blocks.extend(placed)

    blocks = sorted(event_blocks + task_blocks, key=lambda b: (b.start, b.kind != "event"))
    plan = DayPlan(date=day, blocks=blocks, unscheduled=[t.title for t in queue])
    logger.debug(
        "Planned %s: %d event(s), %d task block(s), %d unscheduled",
        day, len(event_blocks), len(task_blocks), len(plan.unscheduled),
    )
    return plan


# ---------------------------------------------------------------------------
# Store-backed planner
# ---------------------------------------------------------------------------


class DayPlanner:
    """Fetches events and open tasks, then delegates to schedule_day()."""

    def __init__(
        self,
        tasks: TaskStore,
        calendar: CalendarPort,
        start_hour: int | None = None,
        end_hour: int | None = None,
    ) -> None:
        from taskpilot.config import settings

        self._tasks = tasks
        self._calendar = calendar
        self._start_hour = settings.WORKDAY_START_HOUR if start_hour is None else start_hour
        self._end_hour = settings.WORKDAY_END_HOUR if end_hour is None else end_hour

    async def _fetch(
        self, user_id: str, first: date, last: date, tz: tzinfo,
    ) -> tuple[list[CalendarEvent], list[TaskRecord]]:
        range_start, _ = day_bounds(first, tz)
        _, range_end = day_bounds(last, tz)
        return await asyncio.gather(
            self._calendar.list_events(range_start.isoformat(), range_end.isoformat()),
            asyncio.to_thread(self._tasks.list_tasks, user_id, "open"),
        )

    @staticmethod
    def _events_on(day: date, events: list[CalendarEvent], tz: tzinfo) -> list[CalendarEvent]:
        selected = []
        for event in events:
            try:
                if parse_iso(event.start_iso, tz).astimezone(tz).date() == day:
                    selected.append(event)
            except ValueError:
                logger.warning("Ignoring event %s with unparseable start %r", event.id, event.start_iso)
        return selected

    async def build_plan(self, user_id: str, date_iso: str | None, timezone: str | None = None) -> DayPlan:
        tz = get_tz(timezone)
        day = parse_date(date_iso, datetime.now(tz).date())
        events, tasks = await self._fetch(user_id, day, day, tz)

        day_tasks = [t for t in tasks if t.due_date == day.isoformat()]
        backlog = [t for t in tasks if not t.due_date]
        return schedule_day(
            day, self._events_on(day, events, tz), day_tasks, backlog, tz,
            start_hour=self._start_hour, end_hour=self._end_hour,
        )

    async def build_week_plan(
        self,
        user_id: str,
        start_date_iso: str | None,
        end_date_iso: str | None = None,
        timezone: str | None = None,
    ) -> WeekPlan:
        """Plan up to seven consecutive days. Each backlog task lands on at most one day."""
        tz = get_tz(timezone)
        today = datetime.now(tz).date()
        first = parse_date(start_date_iso, today)
        last = parse_date(end_date_iso, today) if end_date_iso else first + timedelta(days=MAX_WEEK_DAYS - 1)
        if last < first:
            last = first
        last = min(last, first + timedelta(days=MAX_WEEK_DAYS - 1))

        events, tasks = await self._fetch(user_id, first, last, tz)
        backlog = [t for t in tasks if not t.due_date]

        week = WeekPlan()
        day = first
        while day <= last:
            day_tasks = [t for t in tasks if t.due_date == day.isoformat()]
            plan = schedule_day(
                day, self._events_on(day, events, tz), day_tasks, backlog, tz,
                start_hour=self._start_hour, end_hour=self._end_hour,
            )
            placed = {b.task_id for b in plan.blocks if b.task_id is not None}
            backlog = [t for t in backlog if t.id not in placed]
            # Leftover backlog rolls to the next day rather than counting as missed
            plan.unscheduled = [t.title for t in day_tasks if t.id not in placed]
            week.unscheduled.extend(plan.unscheduled)
            week.days.append(plan)
            day += timedelta(days=1)

        week.unscheduled.extend(t.title for t in backlog)
        return week
