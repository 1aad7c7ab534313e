"""
TaskPilot — Action Dispatcher.

Executes a batch of validated actions against the task, project, info,
calendar and email collaborators, strictly in order, and reports the outcome
of each as a human-readable log entry.

Every action produces exactly one log entry (multi-line content is joined
with newlines inside that entry). A failing action is logged and reported;
it never stops the rest of the batch.

Log conventions:
  "[assistant] ..."            success
  "🗓 / 📧 / ✏️ / 📋 ..."       success for calendar, email and display actions
  "[assistant] [error] ..."    a precondition was not met, nothing was done
  "[error] Action <kind> failed: <message>"   the action raised
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, tzinfo
from typing import Awaitable, Callable

from taskpilot.core import actions as a
from taskpilot.core.day_planner import DayPlan, DayPlanner, PlannedBlock
from taskpilot.core.mailer import draft_email_reply
from taskpilot.core.resolver import EVENT_LOOKAHEAD, find_all, find_event
from taskpilot.core.timeutils import (
    day_bounds,
    format_clock,
    format_day,
    get_tz,
    is_all_day,
    parse_date,
    parse_iso,
)
from taskpilot.ports.calendar_port import CalendarError, CalendarEvent, CalendarPort
from taskpilot.ports.email_port import EmailError, EmailPort
from taskpilot.ports.store_port import InfoStore, ProjectStore, TaskStore

logger = logging.getLogger(__name__)

LIST_LIMIT = 5
DEFAULT_EVENT_MINUTES = 60

# Actions that read or write per-user rows and therefore need an identity
_USER_SCOPED = frozenset({
    "create_tasks", "update_tasks", "update_task", "delete_tasks", "list_tasks",
    "plan_day", "plan_week",
    "create_project", "assign_tasks_to_project", "archive_project", "update_task_type",
    "remember_info", "lookup_info",
})


@dataclass(frozen=True)
class DispatchContext:
    """Who is asking, where they are, and when."""

    user_id: str | None
    user_email: str | None
    timezone: str
    now: datetime

    @classmethod
    def resolve(
        cls,
        user_id: str | None = None,
        user_email: str | None = None,
        timezone: str | None = None,
        now: datetime | None = None,
    ) -> DispatchContext:
        """Build a context, applying the configured fallback identity and timezone."""
        from taskpilot.config import settings

        tz_name = timezone or settings.TIMEZONE
        return cls(
            user_id=user_id or settings.ASSISTANT_USER_ID or None,
            user_email=user_email,
            timezone=tz_name,
            now=now or datetime.now(get_tz(tz_name)),
        )

    @property
    def tz(self) -> tzinfo:
        return get_tz(self.timezone)

    @property
    def today(self) -> date:
        return self.now.astimezone(self.tz).date()


def _task_ids(raw_ids: list[str]) -> list[int]:
    """Store ids are integers; anything else cannot match a row."""
    ids = []
    for raw in raw_ids:
        try:
            ids.append(int(raw))
        except (TypeError, ValueError):
            logger.warning("Ignoring non-numeric task id %r", raw)
    return ids


class ActionDispatcher:
    """Runs action batches. One instance serves every request."""

    def __init__(
        self,
        tasks: TaskStore,
        projects: ProjectStore,
        info: InfoStore,
        calendar: CalendarPort,
        email: EmailPort | None = None,
        planner: DayPlanner | None = None,
    ) -> None:
        self._tasks = tasks
        self._projects = projects
        self._info = info
        self._calendar = calendar
        self._email = email
        self._planner = planner or DayPlanner(tasks, calendar)

        self._handlers: dict[str, Callable[..., Awaitable[str]]] = {
            "create_tasks": self._create_tasks,
            "update_tasks": self._update_tasks,
            "update_task": self._update_task,
            "delete_tasks": self._delete_tasks,
            "list_tasks": self._list_tasks,
            "create_events": self._create_events,
            "delete_events": self._delete_events,
            "move_event": self._move_event,
            "list_events": self._list_events,
            "plan_day": self._plan_day,
            "plan_week": self._plan_week,
            "create_project": self._create_project,
            "assign_tasks_to_project": self._assign_tasks_to_project,
            "archive_project": self._archive_project,
            "update_task_type": self._update_task_type,
            "display": self._display,
            "send_email": self._send_email,
            "draft_reply": self._draft_reply,
            "remember_info": self._remember_info,
            "lookup_info": self._lookup_info,
            "check_availability": self._check_availability,
        }

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def execute_actions(self, actions: list[a.Action], ctx: DispatchContext) -> list[str]:
        """Execute `actions` in order. Returns exactly one log entry per action."""
        log: list[str] = []
        for action in actions:
            kind = getattr(action, "type", type(action).__name__)
            logger.info("Executing action %s for user %s", kind, ctx.user_id)

            handler = self._handlers.get(kind)
            if handler is None:
                log.append(f"[assistant] Unsupported action: {kind}")
                continue
            if kind in _USER_SCOPED and not ctx.user_id:
                log.append(f"[assistant] [error] Missing user for {kind}.")
                continue

            try:
                log.append(await handler(action, ctx))
            except Exception as exc:
                logger.exception("Action %s failed", kind)
                log.append(f"[error] Action {kind} failed: {exc}")
        return log

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    async def _create_tasks(self, action: a.CreateTasks, ctx: DispatchContext) -> str:
        created = 0
        for task in action.tasks:
            project_id = None
            if task.project_name:
                project_id = self._projects.create_or_get(ctx.user_id, task.project_name, task.area).id
            self._tasks.add_task(
                ctx.user_id,
                task.title,
                description=task.description,
                priority=task.priority,
                due_date=task.due_date_iso,
                estimated_minutes=task.estimated_minutes,
                focus=task.focus,
                owner=task.owner,
                area=task.area,
                project_id=project_id,
                kind=task.kind,
                task_type=task.task_type,
                location=task.location,
            )
            created += 1
        return f"[assistant] Added {created} task(s)."

    async def _update_tasks(self, action: a.UpdateTasks, ctx: DispatchContext) -> str:
        patch = action.patch.to_fields()
        if not patch:
            return "[assistant] [error] update_tasks has an empty patch."
        where = action.where
        if where is None or not (where.id or where.match_title or where.area):
            return "[assistant] [error] update_tasks needs a task id, title or area."

        if where.id:
            ids = _task_ids([where.id])
        elif where.match_title:
            matched = find_all(where.match_title, self._tasks.list_tasks(ctx.user_id), lambda t: t.title)
            ids = [t.id for t in matched]
        else:
            ids = [t.id for t in self._tasks.list_tasks(ctx.user_id, area=where.area)]

        count = self._tasks.update_tasks(ctx.user_id, ids, patch)
        return f"[assistant] Updated {count} task(s) matching your request."

    async def _update_task(self, action: a.UpdateTask, ctx: DispatchContext) -> str:
        fields = action.fields.to_fields()
        if not fields:
            return "[assistant] [error] update_task has no fields to change."
        count = self._tasks.update_tasks(ctx.user_id, _task_ids([action.task_id]), fields)
        return f"[assistant] Updated {count} task(s)."

    async def _delete_tasks(self, action: a.DeleteTasks, ctx: DispatchContext) -> str:
        if action.delete_all:
            count = self._tasks.delete_all_tasks(ctx.user_id)
            return f"[assistant] Deleted all tasks for this user. ({count})"
        if action.task_ids:
            ids = _task_ids(action.task_ids)
        elif action.query:
            matched = find_all(action.query, self._tasks.list_tasks(ctx.user_id), lambda t: t.title)
            ids = [t.id for t in matched]
        else:
            return "[assistant] [error] delete_tasks needs task ids or a query."
        count = self._tasks.delete_tasks(ctx.user_id, ids)
        return f"[assistant] Deleted {count} task(s)."

    async def _list_tasks(self, action: a.ListTasks, ctx: DispatchContext) -> str:
        due = parse_date(action.day, ctx.today).isoformat() if action.day else None
        tasks = self._tasks.list_tasks(
            ctx.user_id, status=action.status, due_date=due, focus=action.focus, area=action.area,
        )
        if not tasks:
            return "[assistant] No tasks found for that filter."

        limit = action.limit if action.limit and action.limit > 0 else LIST_LIMIT
        lines = ["[assistant] Here are your tasks:"]
        for task in tasks[:limit]:
            focus = f" [{task.focus}]" if task.focus else ""
            due_part = f" (due {task.due_date})" if task.due_date else ""
            lines.append(f"• {task.title}{focus}{due_part}")
        if len(tasks) > limit:
            lines.append(f"[assistant] ...and {len(tasks) - limit} more.")
        return "\n".join(lines)

    # ------------------------------------------------------------------
    # Calendar
    # ------------------------------------------------------------------

    def _event_times(self, event: CalendarEvent, tz: tzinfo) -> tuple[datetime, datetime]:
        start = parse_iso(event.start_iso, tz)
        if event.end_iso and event.end_iso != event.start_iso:
            return start, parse_iso(event.end_iso, tz)
        return start, start + timedelta(minutes=DEFAULT_EVENT_MINUTES)

    def _event_label(self, event: CalendarEvent, tz: tzinfo) -> str:
        if is_all_day(event.start_iso):
            return "all day"
        start, end = self._event_times(event, tz)
        return f"{format_clock(start.astimezone(tz))}–{format_clock(end.astimezone(tz))}"

    async def _create_events(self, action: a.CreateEvents, ctx: DispatchContext) -> str:
        lines = []
        for event in action.events:
            try:
                created = await self._calendar.create_event(
                    event.title, event.start_iso, event.end_iso,
                    location=event.location, description=event.description,
                )
            except CalendarError as exc:
                if lines:
                    raise CalendarError(
                        f"{exc} ({len(lines)} of {len(action.events)} event(s) already created)"
                    ) from exc
                raise
            line = f"• {created.title} ({self._event_label(created, ctx.tz)})"
            if event.assumptions:
                assumed = "; ".join(f"{k}: {v}" for k, v in event.assumptions.items())
                line += f" [assumed {assumed}]"
            lines.append(line)
        return "\n".join([f"🗓 Created {len(lines)} event(s)."] + lines)

    async def _delete_events(self, action: a.DeleteEvents, ctx: DispatchContext) -> str:
        event_ids = list(action.event_ids)
        if not event_ids and action.query:
            events = await self._calendar.list_events(
                ctx.now.isoformat(), (ctx.now + EVENT_LOOKAHEAD).isoformat(),
            )
            event_ids = [e.id for e in find_all(action.query, events, lambda e: e.title) if e.id]

        for done, event_id in enumerate(event_ids):
            try:
                await self._calendar.delete_event(event_id)
            except CalendarError as exc:
                if done:
                    raise CalendarError(
                        f"{exc} ({done} of {len(event_ids)} event(s) already deleted)"
                    ) from exc
                raise

        if not event_ids:
            return "I didn’t find any calendar events to delete."
        if len(event_ids) == 1:
            return "Deleted 1 calendar event."
        return f"Deleted {len(event_ids)} calendar events."

    async def _move_event(self, action: a.MoveEvent, ctx: DispatchContext) -> str:
        if not action.query:
            return "I need a description of which event to move."
        if not action.new_start_iso and action.shift_minutes is None:
            return "[assistant] [error] move_event needs a new start time or a shift in minutes."

        target = await find_event(self._calendar, action.query, ctx.now)
        if target is None:
            return "I couldn’t find an event that matches that description."

        tz = ctx.tz
        old_start, old_end = self._event_times(target, tz)
        if action.new_start_iso:
            new_start = parse_iso(action.new_start_iso, tz)
            new_end = new_start + (old_end - old_start)
        else:
            shift = timedelta(minutes=action.shift_minutes)
            new_start, new_end = old_start + shift, old_end + shift

        await self._calendar.update_event_time(target.id, new_start.isoformat(), new_end.isoformat())
        return (
            f'Moved "{target.title}" from {format_clock(old_start.astimezone(tz))} '
            f"to {format_clock(new_start.astimezone(tz))}."
        )

    async def _list_events(self, action: a.ListEvents, ctx: DispatchContext) -> str:
        day = parse_date(action.day, ctx.today)
        start, end = day_bounds(day, ctx.tz)
        events = await self._calendar.list_events(start.isoformat(), end.isoformat())
        if not events:
            return "[assistant] No calendar events found for that time range."
        lines = [f"[assistant] Listing all calendar events for {day.isoformat()}."]
        for event in events:
            lines.append(f"[assistant] - {event.title} ({self._event_label(event, ctx.tz)})")
        return "\n".join(lines)

    async def _display(self, action: a.Display, ctx: DispatchContext) -> str:
        range_label = ""
        if action.start_iso or action.end_iso:
            range_label = f" ({action.start_iso or '...'} → {action.end_iso or '...'})"
        return f"📋 Display: {action.mode}{range_label}"

    async def _check_availability(self, action: a.CheckAvailability, ctx: DispatchContext) -> str:
        return 'I can’t yet automatically check your availability. Try: "What’s on my calendar tomorrow?"'

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    @staticmethod
    def _block_line(block: PlannedBlock, tz: tzinfo) -> str:
        icon = "📅" if block.kind == "event" else "✅"
        if block.all_day:
            return f"{icon} All day: {block.label}"
        return f"{icon} {format_clock(block.start.astimezone(tz))}–{format_clock(block.end.astimezone(tz))}: {block.label}"

    def _render_day(self, plan: DayPlan, tz: tzinfo) -> list[str]:
        lines = [self._block_line(b, tz) for b in plan.blocks]
        if not lines:
            lines.append("Nothing on the calendar and no open tasks.")
        if plan.unscheduled:
            lines.append(f"Didn't fit: {', '.join(plan.unscheduled)}")
        return lines

    async def _plan_day(self, action: a.PlanDay, ctx: DispatchContext) -> str:
        plan = await self._planner.build_plan(ctx.user_id, action.date_iso, ctx.timezone)
        header = f"[assistant] Here is a draft plan for {format_day(plan.date)}:"
        return "\n".join([header] + self._render_day(plan, ctx.tz))

    async def _plan_week(self, action: a.PlanWeek, ctx: DispatchContext) -> str:
        week = await self._planner.build_week_plan(
            ctx.user_id, action.start_date_iso, action.end_date_iso, ctx.timezone,
        )
        first, last = week.days[0].date, week.days[-1].date
        lines = [f"[assistant] Week plan {format_day(first)} – {format_day(last)}:"]
        for plan in week.days:
            events = sum(1 for b in plan.blocks if b.kind == "event")
            tasks = [b.label for b in plan.blocks if b.kind == "task"]
            summary = f"{format_day(plan.date)}: {events} event(s)"
            if tasks:
                summary += f"; tasks: {', '.join(tasks)}"
            lines.append(summary)
        if week.unscheduled:
            lines.append(f"Didn't fit this week: {', '.join(week.unscheduled)}")
        return "\n".join(lines)

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    async def _create_project(self, action: a.CreateProject, ctx: DispatchContext) -> str:
        project = self._projects.create_or_get(ctx.user_id, action.name, action.area)
        return f"[assistant] Created project '{project.name}' in area '{project.area or 'general'}'."

    async def _assign_tasks_to_project(self, action: a.AssignTasksToProject, ctx: DispatchContext) -> str:
        project = self._projects.create_or_get(ctx.user_id, action.project_name, action.area)
        ids: list[int] = []
        if action.task_titles:
            tasks = self._tasks.list_tasks(ctx.user_id)
            for title in action.task_titles:
                for task in find_all(title, tasks, lambda t: t.title):
                    if task.id not in ids:
                        ids.append(task.id)
        elif action.area:
            ids = [t.id for t in self._tasks.list_tasks(ctx.user_id, area=action.area)]
        moved = self._tasks.update_tasks(ctx.user_id, ids, {"project_id": project.id})
        return f"[assistant] Assigned {moved} task(s) to project '{project.name}'."

    async def _archive_project(self, action: a.ArchiveProject, ctx: DispatchContext) -> str:
        project = self._projects.get_by_name(ctx.user_id, action.name)
        if project is None:
            return "[assistant] [error] Project not found to archive."
        self._projects.archive(ctx.user_id, project.id)
        return f"[assistant] Archived project '{project.name}'."

    async def _update_task_type(self, action: a.UpdateTaskType, ctx: DispatchContext) -> str:
        matched = find_all(action.task_title, self._tasks.list_tasks(ctx.user_id), lambda t: t.title)
        fields: dict = {"task_type": action.task_type}
        if action.task_type == "day_task" and action.date_iso:
            fields["due_date"] = action.date_iso[:10]
        elif action.task_type == "anytime":
            fields["due_date"] = None
        count = self._tasks.update_tasks(ctx.user_id, [t.id for t in matched], fields)
        if count == 0:
            return "[assistant] No matching task found to update type."
        suffix = f" for {action.date_iso[:10]}" if action.task_type == "day_task" and action.date_iso else ""
        return f"[assistant] Updated task '{action.task_title}' to {action.task_type}{suffix}."

    # ------------------------------------------------------------------
    # Email
    # ------------------------------------------------------------------

    def _require_email(self) -> EmailPort:
        if self._email is None:
            raise EmailError("Email is not connected")
        return self._email

    async def _send_email(self, action: a.SendEmail, ctx: DispatchContext) -> str:
        email = action.email
        if not (email.to and email.subject and email.body):
            return "[assistant] [error] send_email needs a recipient, subject and body."
        message_id = await self._require_email().send_email(email.to, email.subject, email.body)
        return f"📧 Email sent ({message_id})."

    async def _draft_reply(self, action: a.DraftReply, ctx: DispatchContext) -> str:
        body = await draft_email_reply(self._require_email(), action.email)
        return f"✏️ Draft reply:\n{body}"

    # ------------------------------------------------------------------
    # Remembered info
    # ------------------------------------------------------------------

    async def _remember_info(self, action: a.RememberInfo, ctx: DispatchContext) -> str:
        lines = []
        for item in action.items:
            saved = self._info.upsert(ctx.user_id, item.label, item.value)
            lines.append(f'[assistant] Remembered "{saved.label}" as "{saved.value}".')
        return "\n".join(lines)

    async def _lookup_info(self, action: a.LookupInfo, ctx: DispatchContext) -> str:
        lines = []
        for label in action.labels:
            fact = self._info.lookup(ctx.user_id, label)
            if fact is None:
                lines.append(f'I don\'t have "{label}" saved yet.')
            else:
                lines.append(f'"{label}" is "{fact.value}".')
        return "\n".join(lines)
