"""Tests for taskpilot.core.dispatcher — executing action batches."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest

from conftest import FakeCalendar
from taskpilot.core import actions as a
from taskpilot.core.dispatcher import ActionDispatcher, DispatchContext
from taskpilot.core.normalizer import normalize_response
from taskpilot.ports.calendar_port import CalendarError, CalendarEvent


@pytest.fixture
def dispatcher(task_db, project_db, info_db, fake_calendar):
    return ActionDispatcher(task_db, project_db, info_db, fake_calendar)


def _dinner(event_id="e1", title="Dinner with Jasper"):
    return CalendarEvent(
        id=event_id, title=title,
        start_iso="2025-04-18T19:00:00-04:00", end_iso="2025-04-18T21:00:00-04:00",
    )


class FailingDeleteCalendar(FakeCalendar):
    async def delete_event(self, event_id):
        raise CalendarError("boom")


class FlakyCalendar(FakeCalendar):
    """Fails every create and delete after the first `ok` calls."""

    def __init__(self, ok, events=None):
        super().__init__(events)
        self._ok = ok

    def _tick(self):
        if self._ok == 0:
            raise CalendarError("quota exceeded")
        self._ok -= 1

    async def create_event(self, *args, **kwargs):
        self._tick()
        return await super().create_event(*args, **kwargs)

    async def delete_event(self, event_id):
        self._tick()
        await super().delete_event(event_id)


# ---------------------------------------------------------------------------
# Batch behaviour
# ---------------------------------------------------------------------------


class TestBatch:
    @pytest.mark.asyncio
    async def test_one_entry_per_action_and_failure_does_not_stop_batch(self, task_db, project_db, info_db, ctx):
        dispatcher = ActionDispatcher(task_db, project_db, info_db, FailingDeleteCalendar())
        log = await dispatcher.execute_actions(
            [
                a.CreateTasks(tasks=[a.TaskInput(title="A")]),
                a.DeleteEvents(event_ids=["x"]),
                a.CreateTasks(tasks=[a.TaskInput(title="B")]),
            ],
            ctx,
        )
        assert log == [
            "[assistant] Added 1 task(s).",
            "[error] Action delete_events failed: boom",
            "[assistant] Added 1 task(s).",
        ]
        assert [t.title for t in task_db.list_tasks("user-a")] == ["A", "B"]

    @pytest.mark.asyncio
    async def test_unsupported_action(self, dispatcher, ctx):
        log = await dispatcher.execute_actions([SimpleNamespace(type="teleport")], ctx)
        assert log == ["[assistant] Unsupported action: teleport"]

    @pytest.mark.asyncio
    async def test_missing_user_for_scoped_action(self, dispatcher, task_db, now):
        ctx = DispatchContext(user_id=None, user_email=None, timezone="America/New_York", now=now)
        log = await dispatcher.execute_actions([a.CreateTasks(tasks=[a.TaskInput(title="A")])], ctx)
        assert log == ["[assistant] [error] Missing user for create_tasks."]

    @pytest.mark.asyncio
    async def test_calendar_actions_do_not_need_a_user(self, dispatcher, fake_calendar, now):
        fake_calendar.events.append(_dinner())
        ctx = DispatchContext(user_id=None, user_email=None, timezone="America/New_York", now=now)
        log = await dispatcher.execute_actions([a.DeleteEvents(query="dinner")], ctx)
        assert log == ["Deleted 1 calendar event."]

    @pytest.mark.asyncio
    async def test_malformed_event_dropped_before_dispatch(self, dispatcher, task_db, ctx):
        plan = normalize_response({
            "actions": [
                {"action": "create_tasks", "parameters": {"tasks": [{"title": "Call mom"}]}},
                {"action": "create_events", "parameters": {"events": [{"title": "No times"}]}},
            ]
        })
        log = await dispatcher.execute_actions(plan.actions, ctx)
        assert log == ["[assistant] Added 1 task(s)."]


class TestDispatchContext:
    def test_resolve_defaults(self, now):
        ctx = DispatchContext.resolve("u1", now=now)
        assert ctx.user_id == "u1"
        assert ctx.timezone == "America/New_York"
        assert ctx.today.isoformat() == "2025-04-15"

    def test_resolve_fallback_user(self, now):
        with patch("taskpilot.config.settings.ASSISTANT_USER_ID", "owner"):
            assert DispatchContext.resolve(None, now=now).user_id == "owner"

    def test_resolve_without_fallback_user(self, now):
        assert DispatchContext.resolve(None, now=now).user_id is None


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


class TestTaskActions:
    @pytest.mark.asyncio
    async def test_create_tasks_with_project(self, dispatcher, task_db, project_db, ctx):
        log = await dispatcher.execute_actions(
            [a.CreateTasks(tasks=[a.TaskInput(title="Tile", project_name="Kitchen"), a.TaskInput(title="Paint")])],
            ctx,
        )
        assert log == ["[assistant] Added 2 task(s)."]
        project = project_db.get_by_name("user-a", "kitchen")
        tile, paint = task_db.list_tasks("user-a")
        assert tile.project_id == project.id
        assert paint.project_id is None

    @pytest.mark.asyncio
    async def test_delete_all_is_scoped_to_caller(self, dispatcher, task_db, ctx):
        task_db.add_task("user-a", "Mine 1")
        task_db.add_task("user-a", "Mine 2")
        task_db.add_task("user-b", "Theirs")
        log = await dispatcher.execute_actions([a.DeleteTasks(delete_all=True)], ctx)
        assert log == ["[assistant] Deleted all tasks for this user. (2)"]
        assert task_db.list_tasks("user-a") == []
        assert [t.title for t in task_db.list_tasks("user-b")] == ["Theirs"]

    @pytest.mark.asyncio
    async def test_delete_by_query(self, dispatcher, task_db, ctx):
        task_db.add_task("user-a", "File taxes")
        task_db.add_task("user-a", "Buy milk")
        log = await dispatcher.execute_actions([a.DeleteTasks(query="TAXES")], ctx)
        assert log == ["[assistant] Deleted 1 task(s)."]
        assert [t.title for t in task_db.list_tasks("user-a")] == ["Buy milk"]

    @pytest.mark.asyncio
    async def test_update_tasks_by_title(self, dispatcher, task_db, ctx):
        task = task_db.add_task("user-a", "File taxes")
        log = await dispatcher.execute_actions(
            [a.UpdateTasks(where=a.TaskSelector(match_title="taxes"), patch=a.TaskPatch(status="done"))], ctx,
        )
        assert log == ["[assistant] Updated 1 task(s) matching your request."]
        assert task_db.get_task("user-a", task.id).status == "done"

    @pytest.mark.asyncio
    async def test_update_tasks_preconditions(self, dispatcher, ctx):
        log = await dispatcher.execute_actions(
            [
                a.UpdateTasks(where=a.TaskSelector(match_title="taxes")),
                a.UpdateTasks(patch=a.TaskPatch(status="done")),
            ],
            ctx,
        )
        assert log[0].startswith("[assistant] [error]")
        assert log[1].startswith("[assistant] [error]")

    @pytest.mark.asyncio
    async def test_update_single_task(self, dispatcher, task_db, ctx):
        task = task_db.add_task("user-a", "Old")
        log = await dispatcher.execute_actions(
            [a.UpdateTask(task_id=str(task.id), fields=a.TaskPatch(title="New"))], ctx,
        )
        assert log == ["[assistant] Updated 1 task(s)."]
        assert task_db.get_task("user-a", task.id).title == "New"

    @pytest.mark.asyncio
    async def test_list_tasks_truncates(self, dispatcher, task_db, ctx):
        for i in range(7):
            task_db.add_task("user-a", f"T{i}", focus="work" if i == 0 else None)
        [entry] = await dispatcher.execute_actions([a.ListTasks()], ctx)
        lines = entry.split("\n")
        assert lines[0] == "[assistant] Here are your tasks:"
        assert lines[1] == "• T0 [work]"
        assert len([line for line in lines if line.startswith("•")]) == 5
        assert lines[-1] == "[assistant] ...and 2 more."

    @pytest.mark.asyncio
    async def test_list_tasks_for_today(self, dispatcher, task_db, ctx):
        task_db.add_task("user-a", "Payroll", due_date="2025-04-15")
        task_db.add_task("user-a", "Later", due_date="2025-04-16")
        [entry] = await dispatcher.execute_actions([a.ListTasks(day="today")], ctx)
        assert "• Payroll (due 2025-04-15)" in entry
        assert "Later" not in entry

    @pytest.mark.asyncio
    async def test_list_tasks_empty(self, dispatcher, ctx):
        assert await dispatcher.execute_actions([a.ListTasks()], ctx) == ["[assistant] No tasks found for that filter."]

    @pytest.mark.asyncio
    async def test_update_task_type(self, dispatcher, task_db, ctx):
        task = task_db.add_task("user-a", "Gym")
        log = await dispatcher.execute_actions(
            [a.UpdateTaskType(task_title="gym", task_type="day_task", date_iso="2025-04-17")], ctx,
        )
        assert log == ["[assistant] Updated task 'gym' to day_task for 2025-04-17."]
        stored = task_db.get_task("user-a", task.id)
        assert (stored.task_type, stored.due_date) == ("day_task", "2025-04-17")

        await dispatcher.execute_actions([a.UpdateTaskType(task_title="gym", task_type="anytime")], ctx)
        stored = task_db.get_task("user-a", task.id)
        assert (stored.task_type, stored.due_date) == ("anytime", None)

    @pytest.mark.asyncio
    async def test_update_task_type_no_match(self, dispatcher, ctx):
        log = await dispatcher.execute_actions([a.UpdateTaskType(task_title="gym", task_type="anytime")], ctx)
        assert log == ["[assistant] No matching task found to update type."]


# ---------------------------------------------------------------------------
# Calendar
# ---------------------------------------------------------------------------


class TestCalendarActions:
    @pytest.mark.asyncio
    async def test_create_events(self, dispatcher, fake_calendar, ctx):
        [entry] = await dispatcher.execute_actions(
            [a.CreateEvents(events=[a.EventInput(
                title="Dinner", start_iso="2025-04-18T19:00:00-04:00", end_iso="2025-04-18T21:00:00-04:00",
                assumptions={"time": "defaulted evening"},
            )])],
            ctx,
        )
        assert entry == "🗓 Created 1 event(s).\n• Dinner (7:00 PM–9:00 PM) [assumed time: defaulted evening]"
        assert fake_calendar.events[0].title == "Dinner"

    @pytest.mark.asyncio
    async def test_move_event_preserves_duration(self, dispatcher, fake_calendar, ctx):
        fake_calendar.events.append(_dinner())
        log = await dispatcher.execute_actions(
            [a.MoveEvent(query="dinner with jasper", new_start_iso="2025-04-18T20:00:00")], ctx,
        )
        assert log == ['Moved "Dinner with Jasper" from 7:00 PM to 8:00 PM.']
        assert fake_calendar.updates == [("e1", "2025-04-18T20:00:00-04:00", "2025-04-18T22:00:00-04:00")]

    @pytest.mark.asyncio
    async def test_move_event_accepts_space_separated_start(self, dispatcher, fake_calendar, ctx):
        fake_calendar.events.append(_dinner())
        log = await dispatcher.execute_actions(
            [a.MoveEvent(query="dinner", new_start_iso="2025-04-18 20:00:00-04:00")], ctx,
        )
        assert log == ['Moved "Dinner with Jasper" from 7:00 PM to 8:00 PM.']
        assert fake_calendar.updates == [("e1", "2025-04-18T20:00:00-04:00", "2025-04-18T22:00:00-04:00")]

    @pytest.mark.asyncio
    async def test_move_event_by_shift(self, dispatcher, fake_calendar, ctx):
        fake_calendar.events.append(_dinner())
        await dispatcher.execute_actions([a.MoveEvent(query="dinner", shift_minutes=-30)], ctx)
        assert fake_calendar.updates == [("e1", "2025-04-18T18:30:00-04:00", "2025-04-18T20:30:00-04:00")]

    @pytest.mark.asyncio
    async def test_move_event_messages(self, dispatcher, fake_calendar, ctx):
        fake_calendar.events.append(_dinner())
        log = await dispatcher.execute_actions(
            [
                a.MoveEvent(new_start_iso="2025-04-18T20:00:00"),
                a.MoveEvent(query="dinner"),
                a.MoveEvent(query="lunch", shift_minutes=30),
            ],
            ctx,
        )
        assert log[0] == "I need a description of which event to move."
        assert log[1].startswith("[assistant] [error]")
        assert log[2] == "I couldn’t find an event that matches that description."
        assert fake_calendar.updates == []

    @pytest.mark.asyncio
    async def test_delete_events_by_query_removes_all_matches(self, dispatcher, fake_calendar, ctx):
        fake_calendar.events.extend([_dinner("e1"), _dinner("e2", "Dinner with Dana"), _dinner("e3", "Standup")])
        log = await dispatcher.execute_actions([a.DeleteEvents(query="dinner")], ctx)
        assert log == ["Deleted 2 calendar events."]
        assert fake_calendar.deleted == ["e1", "e2"]

    @pytest.mark.asyncio
    async def test_create_events_failure_reports_progress(self, task_db, project_db, info_db, ctx):
        calendar = FlakyCalendar(ok=2)
        dispatcher = ActionDispatcher(task_db, project_db, info_db, calendar)
        events = [
            a.EventInput(title=f"Call {n}", start_iso=f"2025-04-18T1{n}:00:00", end_iso=f"2025-04-18T1{n}:30:00")
            for n in range(5)
        ]
        log = await dispatcher.execute_actions([a.CreateEvents(events=events)], ctx)
        assert log == [
            "[error] Action create_events failed: quota exceeded (2 of 5 event(s) already created)"
        ]
        assert [e.title for e in calendar.events] == ["Call 0", "Call 1"]

    @pytest.mark.asyncio
    async def test_delete_events_failure_reports_progress(self, task_db, project_db, info_db, ctx):
        calendar = FlakyCalendar(ok=1, events=[_dinner("e1"), _dinner("e2"), _dinner("e3")])
        dispatcher = ActionDispatcher(task_db, project_db, info_db, calendar)
        log = await dispatcher.execute_actions([a.DeleteEvents(event_ids=["e1", "e2", "e3"])], ctx)
        assert log == [
            "[error] Action delete_events failed: quota exceeded (1 of 3 event(s) already deleted)"
        ]
        assert calendar.deleted == ["e1"]

    @pytest.mark.asyncio
    async def test_delete_events_none_found(self, dispatcher, ctx):
        log = await dispatcher.execute_actions([a.DeleteEvents(query="dinner")], ctx)
        assert log == ["I didn’t find any calendar events to delete."]

    @pytest.mark.asyncio
    async def test_list_events(self, dispatcher, fake_calendar, ctx):
        fake_calendar.events.extend([
            _dinner(),
            CalendarEvent(id="h", title="Holiday", start_iso="2025-04-18", end_iso="2025-04-19"),
        ])
        [entry] = await dispatcher.execute_actions([a.ListEvents(day="2025-04-18")], ctx)
        assert entry.split("\n") == [
            "[assistant] Listing all calendar events for 2025-04-18.",
            "[assistant] - Dinner with Jasper (7:00 PM–9:00 PM)",
            "[assistant] - Holiday (all day)",
        ]
        assert fake_calendar.list_calls[0][0].startswith("2025-04-18T00:00:00")

    @pytest.mark.asyncio
    async def test_list_events_empty(self, dispatcher, ctx):
        log = await dispatcher.execute_actions([a.ListEvents()], ctx)
        assert log == ["[assistant] No calendar events found for that time range."]

    @pytest.mark.asyncio
    async def test_display_and_availability(self, dispatcher, ctx):
        log = await dispatcher.execute_actions(
            [a.Display(mode="week", start_iso="2025-04-14", end_iso="2025-04-20"), a.CheckAvailability(day="tomorrow")],
            ctx,
        )
        assert log[0] == "📋 Display: week (2025-04-14 → 2025-04-20)"
        assert "availability" in log[1]


# ---------------------------------------------------------------------------
# Planning
# ---------------------------------------------------------------------------


class TestPlanning:
    @pytest.mark.asyncio
    async def test_plan_day(self, dispatcher, task_db, fake_calendar, ctx):
        fake_calendar.events.append(CalendarEvent(
            id="s", title="Standup", start_iso="2025-04-15T08:00:00-04:00", end_iso="2025-04-15T08:30:00-04:00",
        ))
        task_db.add_task("user-a", "Taxes", estimated_minutes=60)
        [entry] = await dispatcher.execute_actions([a.PlanDay(date_iso="2025-04-15")], ctx)
        assert entry.split("\n") == [
            "[assistant] Here is a draft plan for Tue Apr 15:",
            "📅 8:00 AM–8:30 AM: Standup",
            "✅ 8:30 AM–9:30 AM: Taxes",
        ]

    @pytest.mark.asyncio
    async def test_plan_day_empty(self, dispatcher, ctx):
        [entry] = await dispatcher.execute_actions([a.PlanDay(date_iso="2025-04-15")], ctx)
        assert entry.endswith("Nothing on the calendar and no open tasks.")

    @pytest.mark.asyncio
    async def test_plan_week(self, dispatcher, task_db, ctx):
        task_db.add_task("user-a", "Taxes")
        [entry] = await dispatcher.execute_actions(
            [a.PlanWeek(start_date_iso="2025-04-14", end_date_iso="2025-04-15")], ctx,
        )
        assert entry.split("\n") == [
            "[assistant] Week plan Mon Apr 14 – Tue Apr 15:",
            "Mon Apr 14: 0 event(s); tasks: Taxes",
            "Tue Apr 15: 0 event(s)",
        ]


# ---------------------------------------------------------------------------
# Projects, info, email
# ---------------------------------------------------------------------------


class TestProjectActions:
    @pytest.mark.asyncio
    async def test_create_and_assign(self, dispatcher, task_db, ctx):
        task_db.add_task("user-a", "Buy tiles")
        task_db.add_task("user-a", "Tile grout")
        task_db.add_task("user-a", "Unrelated")
        log = await dispatcher.execute_actions(
            [
                a.CreateProject(name="Kitchen"),
                a.AssignTasksToProject(project_name="Kitchen", task_titles=["tile", "grout"]),
            ],
            ctx,
        )
        assert log == [
            "[assistant] Created project 'Kitchen' in area 'general'.",
            "[assistant] Assigned 2 task(s) to project 'Kitchen'.",
        ]

    @pytest.mark.asyncio
    async def test_archive(self, dispatcher, project_db, ctx):
        project_db.create_or_get("user-a", "Garden")
        log = await dispatcher.execute_actions(
            [a.ArchiveProject(name="garden"), a.ArchiveProject(name="Nope")], ctx,
        )
        assert log == ["[assistant] Archived project 'Garden'.", "[assistant] [error] Project not found to archive."]


class TestInfoActions:
    @pytest.mark.asyncio
    async def test_remember_then_lookup(self, dispatcher, ctx):
        log = await dispatcher.execute_actions(
            [
                a.RememberInfo(items=[a.InfoItemInput(label="WiFi", value="hunter2")]),
                a.LookupInfo(labels=["wifi", "door code"]),
            ],
            ctx,
        )
        assert log[0] == '[assistant] Remembered "wifi" as "hunter2".'
        assert log[1] == '"wifi" is "hunter2".\nI don\'t have "door code" saved yet.'


class TestEmailActions:
    @pytest.mark.asyncio
    async def test_send_email(self, task_db, project_db, info_db, fake_calendar, ctx):
        email = AsyncMock()
        email.send_email.return_value = "msg-1"
        dispatcher = ActionDispatcher(task_db, project_db, info_db, fake_calendar, email=email)
        log = await dispatcher.execute_actions(
            [a.SendEmail(email=a.EmailInput(to="dana@example.com", subject="Hi", body="Hello"))], ctx,
        )
        assert log == ["📧 Email sent (msg-1)."]
        email.send_email.assert_awaited_once_with("dana@example.com", "Hi", "Hello")

    @pytest.mark.asyncio
    async def test_send_email_missing_fields(self, dispatcher, ctx):
        log = await dispatcher.execute_actions([a.SendEmail(email=a.EmailInput(to="dana@example.com"))], ctx)
        assert log[0].startswith("[assistant] [error]")

    @pytest.mark.asyncio
    async def test_email_not_connected(self, dispatcher, ctx):
        log = await dispatcher.execute_actions(
            [a.SendEmail(email=a.EmailInput(to="d@example.com", subject="Hi", body="Hello"))], ctx,
        )
        assert log == ["[error] Action send_email failed: Email is not connected"]

    @pytest.mark.asyncio
    async def test_draft_reply(self, task_db, project_db, info_db, fake_calendar, ctx):
        dispatcher = ActionDispatcher(task_db, project_db, info_db, fake_calendar, email=AsyncMock())
        with patch("taskpilot.core.dispatcher.draft_email_reply", new=AsyncMock(return_value="Sounds good.")):
            log = await dispatcher.execute_actions(
                [a.DraftReply(email=a.EmailInput(message_id="m1", instructions="say yes"))], ctx,
            )
        assert log == ["✏️ Draft reply:\nSounds good."]
