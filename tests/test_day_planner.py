"""Tests for taskpilot.core.day_planner — time-blocking tasks around events."""

from datetime import date, datetime

import pytest

from conftest import NY, FakeCalendar
from taskpilot.core.day_planner import DayPlanner, schedule_day
from taskpilot.data.models import TaskRecord
from taskpilot.ports.calendar_port import CalendarEvent

DAY = date(2025, 4, 15)


def _task(task_id, title, priority="medium", minutes=None, due=None):
    return TaskRecord(
        id=task_id, user_id="u", title=title, priority=priority,
        estimated_minutes=minutes, due_date=due,
    )


def _event(title, start, end=None, event_id="e"):
    return CalendarEvent(id=event_id, title=title, start_iso=start, end_iso=end)


def _at(hour, minute=0):
    return datetime(2025, 4, 15, hour, minute, tzinfo=NY)


def _tasks(plan):
    return [b for b in plan.blocks if b.kind == "task"]


# ---------------------------------------------------------------------------
# schedule_day
# ---------------------------------------------------------------------------


class TestScheduleDay:
    def test_priority_order_and_no_overlap(self):
        events = [_event("Standup", "2025-04-15T10:00:00", "2025-04-15T11:00:00")]
        backlog = [_task(1, "Medium thing", "medium", 30), _task(2, "High thing", "high", 30)]
        plan = schedule_day(DAY, events, [], backlog, NY)

        labels = [b.label for b in _tasks(plan)]
        assert labels.index("High thing") < labels.index("Medium thing")
        for block in _tasks(plan):
            assert block.end <= _at(10) or block.start >= _at(11)

    def test_day_tasks_before_backlog(self):
        plan = schedule_day(DAY, [], [_task(1, "Payroll", "low", due="2025-04-15")], [_task(2, "Urgent", "high")], NY)
        assert [b.label for b in _tasks(plan)] == ["Payroll", "Urgent"]

    def test_default_duration_sixty_minutes(self):
        plan = schedule_day(DAY, [], [], [_task(1, "A")], NY)
        block = _tasks(plan)[0]
        assert (block.start, block.end) == (_at(8), _at(9))

    def test_task_that_does_not_fit_gap_waits_for_next(self):
        events = [_event("Call", "2025-04-15T08:30:00", "2025-04-15T09:00:00")]
        backlog = [_task(1, "Long", "high", 60), _task(2, "Short", "medium", 30)]
        plan = schedule_day(DAY, events, [], backlog, NY)

        by_label = {b.label: b for b in _tasks(plan)}
        assert by_label["Short"].start == _at(8)
        assert by_label["Long"].start == _at(9)

    def test_space_separated_event_times_still_block(self):
        events = [_event("Standup", "2025-04-15 10:00:00-04:00", "2025-04-15 11:00:00-04:00")]
        plan = schedule_day(DAY, events, [], [_task(1, "A", minutes=60), _task(2, "B", minutes=60),
                                              _task(3, "C", minutes=60)], NY)

        [event] = [b for b in plan.blocks if b.kind == "event"]
        assert not event.all_day
        assert (event.start, event.end) == (_at(10), _at(11))
        for block in _tasks(plan):
            assert block.end <= _at(10) or block.start >= _at(11)

    def test_gap_smaller_than_fifteen_minutes_is_skipped(self):
        events = [_event("Early", "2025-04-15T08:10:00", "2025-04-15T09:00:00")]
        plan = schedule_day(DAY, events, [], [_task(1, "Tiny", minutes=10)], NY)
        assert _tasks(plan)[0].start == _at(9)

    def test_missing_or_zero_length_event_end_defaults_to_an_hour(self):
        events = [
            _event("No end", "2025-04-15T08:00:00", None, "e1"),
            _event("Zero", "2025-04-15T10:00:00", "2025-04-15T10:00:00", "e2"),
        ]
        plan = schedule_day(DAY, events, [], [_task(1, "A", minutes=60), _task(2, "B", minutes=60)], NY)
        event_blocks = {b.label: b for b in plan.blocks if b.kind == "event"}
        assert event_blocks["No end"].end == _at(9)
        assert event_blocks["Zero"].end == _at(11)
        assert [b.start for b in _tasks(plan)] == [_at(9), _at(11)]

    def test_all_day_event_does_not_block_time(self):
        events = [_event("Holiday", "2025-04-15", "2025-04-16")]
        plan = schedule_day(DAY, events, [], [_task(1, "A")], NY)
        assert _tasks(plan)[0].start == _at(8)
        assert any(b.all_day and b.label == "Holiday" for b in plan.blocks)

    def test_unscheduled_reports_leftovers(self):
        backlog = [_task(i, f"T{i}", minutes=120) for i in range(1, 7)]
        plan = schedule_day(DAY, [], [], backlog, NY)
        assert len(_tasks(plan)) == 5
        assert plan.unscheduled == ["T6"]

    def test_nothing_after_workday_end(self):
        events = [_event("Late", "2025-04-15T19:00:00", "2025-04-15T20:00:00")]
        plan = schedule_day(DAY, events, [], [_task(1, "A", minutes=600), _task(2, "B")], NY)
        assert all(b.end <= _at(18) for b in _tasks(plan))
        assert plan.unscheduled == ["B"]

    def test_custom_workday(self):
        plan = schedule_day(DAY, [], [], [_task(1, "A")], NY, start_hour=9, end_hour=10)
        assert _tasks(plan)[0].start == _at(9)

    def test_blocks_are_chronological(self):
        events = [_event("Lunch", "2025-04-15T12:00:00", "2025-04-15T13:00:00")]
        plan = schedule_day(DAY, events, [], [_task(1, "A"), _task(2, "B")], NY)
        starts = [b.start for b in plan.blocks]
        assert starts == sorted(starts)


# ---------------------------------------------------------------------------
# DayPlanner
# ---------------------------------------------------------------------------


class TestDayPlanner:
    @pytest.mark.asyncio
    async def test_build_plan_splits_day_and_backlog(self, task_db):
        task_db.add_task("u", "Due today", due_date="2025-04-15")
        task_db.add_task("u", "Due later", due_date="2025-04-20")
        task_db.add_task("u", "Backlog")
        done = task_db.add_task("u", "Finished")
        task_db.update_tasks("u", [done.id], {"status": "done"})

        calendar = FakeCalendar([_event("Standup", "2025-04-15T09:00:00-04:00", "2025-04-15T09:30:00-04:00")])
        planner = DayPlanner(task_db, calendar, start_hour=8, end_hour=18)
        plan = await planner.build_plan("u", "2025-04-15", "America/New_York")

        labels = [b.label for b in plan.blocks]
        assert "Standup" in labels
        assert "Due today" in labels and "Backlog" in labels
        assert "Due later" not in labels and "Finished" not in labels
        assert calendar.list_calls[0][0].startswith("2025-04-15T00:00:00")

    @pytest.mark.asyncio
    async def test_build_plan_ignores_other_users(self, task_db):
        task_db.add_task("other", "Not mine")
        planner = DayPlanner(task_db, FakeCalendar(), start_hour=8, end_hour=18)
        plan = await planner.build_plan("u", "2025-04-15", "America/New_York")
        assert plan.blocks == []

    @pytest.mark.asyncio
    async def test_week_plan_consumes_backlog_once(self, task_db):
        for i in range(12):
            task_db.add_task("u", f"B{i}", estimated_minutes=60)
        planner = DayPlanner(task_db, FakeCalendar(), start_hour=8, end_hour=18)
        week = await planner.build_week_plan("u", "2025-04-14", "2025-04-16", "America/New_York")

        assert [d.date for d in week.days] == [date(2025, 4, 14), date(2025, 4, 15), date(2025, 4, 16)]
        placed = [b.label for d in week.days for b in d.blocks if b.kind == "task"]
        assert len(placed) == len(set(placed)) == 12
        assert week.unscheduled == []

    @pytest.mark.asyncio
    async def test_week_plan_capped_at_seven_days(self, task_db):
        planner = DayPlanner(task_db, FakeCalendar(), start_hour=8, end_hour=18)
        week = await planner.build_week_plan("u", "2025-04-01", "2025-04-30", "America/New_York")
        assert len(week.days) == 7
