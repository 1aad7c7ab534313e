"""
TaskPilot — Command Interpreter.

Turns a free-form command ("move dinner with Jasper to 8pm and remind me to
file taxes on Thursday") into an action plan using the configured LLM, then
hands the raw JSON to the normalizer.

interpret() never raises: every failure is reported as an "[error] ..." log
line with no actions.
"""

from __future__ import annotations

import json
import logging

from taskpilot.core import llm
from taskpilot.core.dispatcher import DispatchContext
from taskpilot.core.normalizer import NormalizedResponse, normalize_response

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# System prompt for LLM
# ---------------------------------------------------------------------------

_SYSTEM_PROMPT = """\
You are a JSON-only command dispatcher for a personal assistant that manages
tasks, a Google Calendar and a Gmail inbox. Always return valid JSON matching:

{{"actions": [{{"action": "<kind>", "parameters": {{...}}}}], "logLines": ["string"]}}

Action kinds and their parameters:
- create_tasks: {{"tasks": [{{"title", "description", "priority": "low|medium|high", "due_date_iso": "YYYY-MM-DD", "estimated_minutes", "focus", "owner", "area", "project_name", "kind": "backlog|day", "location"}}]}}
- update_tasks: {{"where": {{"id" | "match_title" | "area"}}, "patch": {{"title", "description", "priority", "status": "open|done", "due_date_iso", "estimated_minutes", "focus", "area", "task_type"}}}}
- update_task: {{"task_id", "fields": {{...same as patch...}}}}
- delete_tasks: {{"task_ids": [...]}} or {{"query": "fuzzy title"}} or {{"query": "all"}}
- list_tasks: {{"day": "today|tomorrow|YYYY-MM-DD", "status", "focus", "area"}}
- create_events: {{"events": [{{"title", "start_iso", "end_iso", "location", "description", "assumptions": {{"what": "how it was inferred"}}}}]}}
- delete_events: {{"event_ids": [...]}} or {{"query": "fuzzy title"}}
- move_event: {{"query": "fuzzy title", "new_start_iso"}} or {{"query", "shift_minutes"}}
- list_events: {{"day": "today|tomorrow|YYYY-MM-DD"}}
- plan_day: {{"date_iso"}}
- plan_week: {{"start_date_iso", "end_date_iso"}}
- create_project: {{"name", "area"}}
- assign_tasks_to_project: {{"project_name", "task_titles": [...], "area"}}
- archive_project: {{"name"}}
- update_task_type: {{"task_title", "task_type": "anytime|day_task", "date_iso"}}
- display: {{"mode": "day|week|now", "start_iso", "end_iso"}}
- send_email: {{"email": {{"to", "subject", "body"}}}}
- draft_reply: {{"email": {{"message_id", "thread_id", "instructions"}}}}
- remember_info: {{"items": [{{"label", "value"}}]}}
- lookup_info: {{"labels": [...]}}
- check_availability: {{"day"}}

You manage three kinds of work:
1) Backlog tasks (flexible day): create_tasks with kind="backlog" and no due_date_iso.
2) Day tasks (a specific day, flexible time): create_tasks with kind="day" and due_date_iso.
3) Calendar events (fixed time): create_events with precise start_iso and end_iso.
   Do NOT move events unless the user explicitly asks you to.

Deleting and moving:
- "delete all tasks" -> delete_tasks with query="all".
- "delete dinner with Jasper" -> delete_events with query="dinner with Jasper".
- "move dinner one hour later" -> move_event with query and shift_minutes=60.
- "move my 7pm dinner to 8pm" -> move_event with query and new_start_iso.

Planning:
- "plan my day" / "what does my day look like" -> plan_day (default today).
- "plan my week" -> plan_week.

Examples:
- "add a task to build the admin panel" -> create_tasks, kind="backlog".
- "today I need to send payroll" -> create_tasks, kind="day", due_date_iso={today}.
- "lunch with Jeremy tomorrow at 12" -> create_events with start_iso and end_iso.
- "my wifi password is hunter2" -> remember_info.

The request source is "{source}". For "voice" or "siri", keep logLines short and
speech-friendly (one or two sentences). For "text", logLines may be detailed.

Do not invent other top-level keys. Return ONLY the JSON object, no markdown.
Default timezone: {timezone}. Default event duration: {duration} minutes.
Today is {today}. Current time is {now}.
Extra context: {extra}.
"""


# ---------------------------------------------------------------------------
# Response cleaning
# ---------------------------------------------------------------------------


def _clean_llm_response(raw_text: str) -> str:
    """Remove markdown code block delimiters from the LLM's raw response."""
    cleaned_text = raw_text.strip()
    if cleaned_text.startswith("```json"):
        cleaned_text = cleaned_text.removeprefix("```json")
    elif cleaned_text.startswith("```"):
        cleaned_text = cleaned_text.removeprefix("```")
    if cleaned_text.endswith("```"):
        cleaned_text = cleaned_text.removesuffix("```")
    return cleaned_text.strip()


def build_system_prompt(ctx: DispatchContext, source: str, extra_context: str = "") -> str:
    from taskpilot.config import settings

    local_now = ctx.now.astimezone(ctx.tz)
    return _SYSTEM_PROMPT.format(
        source=source,
        timezone=ctx.timezone,
        duration=settings.DEFAULT_EVENT_DURATION_MINUTES,
        today=local_now.date().isoformat(),
        now=local_now.isoformat(timespec="minutes"),
        extra=extra_context or "(none)",
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def interpret(
    text: str,
    ctx: DispatchContext,
    source: str = "text",
    extra_context: str = "",
) -> NormalizedResponse:
    """Ask the LLM for an action plan for `text` and normalize it."""
    if not text or not text.strip():
        return NormalizedResponse(log_lines=["[error] Empty command."])

    if not llm.is_configured():
        return NormalizedResponse(
            log_lines=["[error] Missing LLM_API_KEY – assistant is not configured."]
        )

    raw_text = ""
    try:
        raw_text = await llm.complete(
            system=build_system_prompt(ctx, source, extra_context),
            user_message=text.strip(),
            max_tokens=2048,
            json_output=True,
        )
        raw_text = _clean_llm_response(raw_text)
        logger.debug("LLM raw response: %s", raw_text)
        data = json.loads(raw_text)
    except json.JSONDecodeError as exc:
        logger.error("Failed to parse LLM response as JSON: %s — raw: '%s'", exc, raw_text)
        return NormalizedResponse(log_lines=["[error] Assistant failed: Assistant returned non-JSON content"])
    except Exception as exc:
        logger.error("Assistant LLM call failed: %s", exc)
        return NormalizedResponse(log_lines=[f"[error] Assistant failed: {exc}"])

    return normalize_response(data)
