"""
TaskPilot — LLM Response Normalizer.

The language model is asked for {"actions": [...], "logLines": [...]} but
nothing enforces that shape, and over time it has answered with several
field-naming conventions. This module turns whatever came back into a list
of validated Action models plus plain-string log lines.

All coercion is table-driven: ACTION_ALIASES maps accepted action names to
canonical kinds, FIELD_ALIASES maps every accepted spelling of a field to its
canonical name (first non-null alias wins), and ITEM_ALIASES does the same
for nested payloads (tasks, events, emails, ...).

normalize_response() never raises. Malformed entries are dropped and logged.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from pydantic import BaseModel, ValidationError

from taskpilot.core.actions import (
    ACTION_MODELS,
    Action,
    EmailInput,
    EventInput,
    InfoItemInput,
    TaskInput,
    TaskPatch,
    TaskSelector,
)

logger = logging.getLogger(__name__)

DEFAULT_LOG_LINE = "Done."

# ---------------------------------------------------------------------------
# Translation tables
# ---------------------------------------------------------------------------

ACTION_ALIASES: dict[str, str] = {
    "create_task": "create_tasks",
    "add_task": "create_tasks",
    "add_tasks": "create_tasks",
    "create_event": "create_events",
    "add_event": "create_events",
    "delete_task": "delete_tasks",
    "delete_event": "delete_events",
    "reschedule_event": "move_event",
    "remember": "remember_info",
    "lookup": "lookup_info",
}

_DUE_ALIASES = ("due_date_iso", "due_date", "due", "dueAt", "due_at")
_MINUTES_ALIASES = ("estimated_minutes", "estimatedMinutes", "duration_minutes", "duration")

ITEM_ALIASES: dict[str, dict[str, tuple[str, ...]]] = {
    "task": {
        "title": ("title", "name"),
        "description": ("description", "notes"),
        "priority": ("priority",),
        "due_date_iso": _DUE_ALIASES,
        "estimated_minutes": _MINUTES_ALIASES,
        "focus": ("focus", "category"),
        "owner": ("owner", "assignee"),
        "area": ("area", "category"),
        "project_name": ("project_name", "project"),
        "kind": ("kind",),
        "task_type": ("task_type", "taskType"),
        "location": ("location",),
    },
    "event": {
        "title": ("title", "summary", "name"),
        "start_iso": ("start_iso", "startIso", "start", "start_time", "startTime"),
        "end_iso": ("end_iso", "endIso", "end", "end_time", "endTime"),
        "location": ("location",),
        "description": ("description", "notes"),
        "assumptions": ("assumptions",),
    },
    "email": {
        "to": ("to", "recipient"),
        "subject": ("subject",),
        "body": ("body", "text", "content"),
        "instructions": ("instructions", "prompt"),
        "thread_id": ("thread_id", "threadId"),
        "message_id": ("message_id", "messageId"),
    },
    "info": {
        "label": ("label", "key", "name"),
        "value": ("value",),
    },
    "selector": {
        "id": ("id", "task_id", "taskId"),
        "match_title": ("match_title", "title", "query"),
        "area": ("area",),
    },
    "patch": {
        "title": ("title",),
        "description": ("description", "notes"),
        "priority": ("priority",),
        "status": ("status",),
        "due_date_iso": _DUE_ALIASES,
        "estimated_minutes": _MINUTES_ALIASES,
        "focus": ("focus",),
        "area": ("area",),
        "task_type": ("task_type", "taskType"),
    },
}

ITEM_MODELS: dict[str, type[BaseModel]] = {
    "task": TaskInput,
    "event": EventInput,
    "email": EmailInput,
    "info": InfoItemInput,
    "selector": TaskSelector,
    "patch": TaskPatch,
}

FIELD_ALIASES: dict[str, dict[str, tuple[str, ...]]] = {
    "create_tasks": {"tasks": ("tasks", "items")},
    "create_events": {"events": ("events", "items")},
    "update_tasks": {
        "where": ("where", "filter", "match"),
        "patch": ("patch", "set", "fields", "updates"),
    },
    "update_task": {
        "task_id": ("task_id", "taskId", "id"),
        "fields": ("fields", "patch", "set"),
    },
    "delete_tasks": {
        "task_ids": ("task_ids", "ids", "taskIds", "task_id", "taskId"),
        "query": ("query", "title", "name", "match_title"),
        "delete_all": ("delete_all", "all"),
    },
    "list_tasks": {
        "day": ("day", "date", "date_iso"),
        "status": ("status",),
        "focus": ("focus", "category"),
        "area": ("area",),
        "limit": ("limit",),
    },
    "delete_events": {
        "event_ids": ("event_ids", "ids", "eventIds", "event_id", "eventId"),
        "query": ("query", "title", "name"),
    },
    "move_event": {
        "query": ("query", "title", "name"),
        "new_start_iso": ("new_start_iso", "newStartIso", "new_start", "start", "start_time"),
        "shift_minutes": ("shift_minutes", "shiftMinutes", "shift"),
    },
    "list_events": {"day": ("day", "date", "date_iso")},
    "plan_day": {"date_iso": ("date_iso", "date", "day")},
    "plan_week": {
        "start_date_iso": ("start_date_iso", "start_date", "start"),
        "end_date_iso": ("end_date_iso", "end_date", "end"),
    },
    "create_project": {
        "name": ("name", "title", "project_name"),
        "area": ("area",),
    },
    "assign_tasks_to_project": {
        "project_name": ("project_name", "project", "name"),
        "task_titles": ("task_titles", "titles", "tasks"),
        "area": ("area",),
    },
    "archive_project": {"name": ("name", "project", "project_name")},
    "update_task_type": {
        "task_title": ("task_title", "title"),
        "task_type": ("task_type", "taskType", "type"),
        "date_iso": ("date_iso", "date"),
    },
    "display": {
        "mode": ("mode", "view"),
        "start_iso": ("start_iso", "startIso", "start"),
        "end_iso": ("end_iso", "endIso", "end"),
    },
    "send_email": {"email": ("email",)},
    "draft_reply": {"email": ("email",)},
    "remember_info": {"items": ("items", "facts")},
    "lookup_info": {"labels": ("labels", "label", "keys", "key")},
    "check_availability": {"day": ("day", "date")},
}

# Canonical list field → item table, for actions carrying a list of payloads
_LIST_ITEMS: dict[str, tuple[str, str]] = {
    "create_tasks": ("tasks", "task"),
    "create_events": ("events", "event"),
    "remember_info": ("items", "info"),
}

# (kind, canonical field) → item table, for single nested payloads
_NESTED_ITEMS: dict[tuple[str, str], str] = {
    ("update_tasks", "where"): "selector",
    ("update_tasks", "patch"): "patch",
    ("update_task", "fields"): "patch",
    ("send_email", "email"): "email",
    ("draft_reply", "email"): "email",
}

# Wrapper objects whose keys are merged into the parameters
_FLATTEN: dict[str, tuple[str, ...]] = {
    "list_tasks": ("query", "filter"),
    "display": ("range",),
    "update_task": ("task",),
}

# Key that identifies a flat parameters dict as a single list item
_ITEM_KEYS: dict[str, tuple[str, ...]] = {
    "task": ("title",),
    "event": ("title", "summary"),
    "info": ("label", "key"),
}

_DELETE_ALL_QUERIES = {"all", "*", "everything", "all tasks"}


# ---------------------------------------------------------------------------
# Value coercion
# ---------------------------------------------------------------------------


def _as_timestamp(value: Any) -> Any:
    """Accept Google-style {"dateTime": ...} / {"date": ...} objects."""
    if isinstance(value, dict):
        return value.get("dateTime") or value.get("date")
    return value


def _as_str_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if v is not None and str(v).strip()]
    text = str(value).strip()
    return [text] if text else []


def _as_title_list(value: Any) -> list[str]:
    if isinstance(value, (list, tuple)):
        titles = [v.get("title") if isinstance(v, dict) else v for v in value]
        return _as_str_list(titles)
    return _as_str_list(value)


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1", "all")
    return bool(value)


def _as_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return None


def _as_optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


_COERCE: dict[str, Callable[[Any], Any]] = {
    "start_iso": _as_timestamp,
    "end_iso": _as_timestamp,
    "new_start_iso": _as_timestamp,
    "task_ids": _as_str_list,
    "event_ids": _as_str_list,
    "labels": _as_str_list,
    "task_titles": _as_title_list,
    "delete_all": _as_bool,
    "shift_minutes": _as_int,
    "limit": _as_int,
    "query": _as_optional_str,
    "date_iso": _as_optional_str,
    "day": _as_optional_str,
}


# ---------------------------------------------------------------------------
# Result type
# ---------------------------------------------------------------------------


@dataclass
class NormalizedResponse:
    """Validated actions plus the model's own log lines."""

    actions: list[Action] = field(default_factory=list)
    log_lines: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Translation helpers
# ---------------------------------------------------------------------------


def _pick(data: dict, aliases: tuple[str, ...]) -> Any:
    """Return the value of the first alias present with a non-null value."""
    for alias in aliases:
        value = data.get(alias)
        if value is not None:
            return value
    return None


def translate_fields(data: dict, table: dict[str, tuple[str, ...]]) -> dict:
    """Map aliased keys of `data` onto canonical names, coercing values."""
    out: dict = {}
    for canonical, aliases in table.items():
        value = _pick(data, aliases)
        coerce = _COERCE.get(canonical)
        if coerce is not None:
            value = coerce(value)
        if value is not None:
            out[canonical] = value
    return out


def _translate_item(data: Any, table_name: str) -> BaseModel | None:
    """Translate and validate one nested payload; None when invalid."""
    if not isinstance(data, dict):
        return None
    fields = translate_fields(data, ITEM_ALIASES[table_name])
    try:
        return ITEM_MODELS[table_name].model_validate(fields)
    except ValidationError as exc:
        logger.warning("Dropping invalid %s payload %s: %s", table_name, data, exc.errors()[0].get("msg"))
        return None


def _collect_items(params: dict, kind: str) -> list[BaseModel]:
    list_field, table_name = _LIST_ITEMS[kind]
    raw_items = _pick(params, FIELD_ALIASES[kind][list_field])
    if not isinstance(raw_items, list):
        keys = _ITEM_KEYS[table_name]
        raw_items = [params] if any(params.get(k) for k in keys) else []
    items = [_translate_item(item, table_name) for item in raw_items]
    return [item for item in items if item is not None]


def _extract_params(entry: dict) -> dict:
    params = entry.get("parameters")
    if params is None:
        params = entry.get("params")
    return params if isinstance(params, dict) else entry


def _canonical_kind(entry: dict) -> str | None:
    name = entry.get("action") or entry.get("type")
    if not isinstance(name, str):
        return None
    name = name.strip().lower()
    return ACTION_ALIASES.get(name, name)


def _translate_action(entry: dict) -> Action | None:
    """Translate one raw action entry into its Action model, or None."""
    kind = _canonical_kind(entry)
    if kind not in ACTION_MODELS:
        logger.info("Ignoring unrecognized action %r", entry.get("action") or entry.get("type"))
        return None

    params = dict(_extract_params(entry))
    for wrapper in _FLATTEN.get(kind, ()):
        nested = params.get(wrapper)
        if isinstance(nested, dict):
            params = {**nested, **{k: v for k, v in params.items() if k != wrapper}}

    fields = translate_fields(params, FIELD_ALIASES[kind])

    if kind in _LIST_ITEMS:
        list_field = _LIST_ITEMS[kind][0]
        fields[list_field] = _collect_items(params, kind)
        if not fields[list_field]:
            logger.warning("Dropping %s: no valid items in %s", kind, params)
            return None

    for (nested_kind, field_name), table_name in _NESTED_ITEMS.items():
        if nested_kind != kind:
            continue
        source = fields.get(field_name)
        if source is None and table_name == "email":
            source = params  # flat email fields
        item = _translate_item(source, table_name)
        if item is None:
            fields.pop(field_name, None)
        else:
            fields[field_name] = item

    if kind == "delete_tasks" and (fields.get("query") or "").lower() in _DELETE_ALL_QUERIES:
        fields["delete_all"] = True
        fields.pop("query", None)

    try:
        return ACTION_MODELS[kind].model_validate({**fields, "type": kind})
    except ValidationError as exc:
        logger.warning("Dropping invalid %s action: %s", kind, exc.errors()[0].get("msg"))
        return None


def _raw_action_entries(raw: Any) -> list:
    """Find the action list in any of the shapes the model has produced."""
    if isinstance(raw, list):
        return raw
    if not isinstance(raw, dict):
        return []

    actions = raw.get("actions")
    if isinstance(actions, list) and actions:
        return actions
    if raw.get("action"):
        params = raw.get("parameters")
        if params is None:
            params = raw.get("params")
        return [{"action": raw["action"], "parameters": params or {}}]
    for shorthand, list_field in (("create_tasks", "tasks"), ("create_events", "events")):
        value = raw.get(shorthand)
        if value:
            params = {list_field: value} if isinstance(value, list) else value
            return [{"action": shorthand, "parameters": params}]
    return []


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def normalize_response(raw: Any) -> NormalizedResponse:
    """Normalize a parsed LLM reply into validated actions and log lines.

    Never raises. When neither actions nor log lines survive, a single
    default log line is returned so callers always have something to show.
    """
    logger.debug("Normalizing raw assistant reply: %s", raw)

    raw_lines = raw.get("logLines", raw.get("log_lines")) if isinstance(raw, dict) else None
    log_lines = [line for line in raw_lines if isinstance(line, str)] if isinstance(raw_lines, list) else []

    actions: list[Action] = []
    for entry in _raw_action_entries(raw):
        if not isinstance(entry, dict):
            logger.warning("Skipping non-dict action entry: %r", entry)
            continue
        try:
            action = _translate_action(entry)
        except (TypeError, ValueError, AttributeError) as exc:
            logger.warning("Skipping malformed action entry %r: %s", entry, exc)
            continue
        if action is not None:
            actions.append(action)

    if not actions and not log_lines:
        log_lines.append(DEFAULT_LOG_LINE)

    logger.info("Normalized %d action(s): %s", len(actions), [a.type for a in actions])
    return NormalizedResponse(actions=actions, log_lines=log_lines)
