"""
TaskPilot — Assistant Service.

The inbound entry point shared by every transport (Telegram text, voice
notes, future HTTP hooks): text + identity + timezone in, executed actions
and log lines out. Transports render the result; they never talk to the
interpreter or dispatcher directly.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime

from taskpilot.core.actions import Action
from taskpilot.core.dispatcher import ActionDispatcher, DispatchContext
from taskpilot.core.interpreter import interpret

logger = logging.getLogger(__name__)

SPEECH_SOURCES = ("voice", "siri")
SPEECH_MAX_LINES = 3
NOTHING_TO_DO = "Okay, I processed that, but there was nothing to do."
SPEECH_FALLBACK = "Got it, I’ve updated your schedule."

_EMOJI = re.compile(
    "[\U0001F300-\U0001FAFF☀-➿️←-⇿]"
)
_ASSISTANT_PREFIX = re.compile(r"^(?:> )?\[assistant\]\s*", re.IGNORECASE)


@dataclass
class CommandResult:
    actions: list[Action] = field(default_factory=list)
    log_lines: list[str] = field(default_factory=list)


def _speech_line(line: str) -> str:
    line = _ASSISTANT_PREFIX.sub("", line.strip())
    line = _EMOJI.sub("", line)
    return re.sub(r"\s{2,}", " ", line).strip(" .")


def build_speech_reply(log_lines: list[str], source: str) -> str:
    """Render log lines for the given source.

    Speech sources get a short sentence built from the last few successful
    lines; every other source gets the lines joined by newlines.
    """
    if not log_lines:
        return NOTHING_TO_DO
    if source not in SPEECH_SOURCES:
        return "\n".join(log_lines)

    lines = [part for entry in log_lines for part in entry.splitlines()]
    kept = [
        line for line in lines
        if "unsupported action" not in line.lower() and "[error]" not in line.lower()
    ]
    cleaned = [_speech_line(line) for line in kept[-SPEECH_MAX_LINES:]]
    reply = ". ".join(line for line in cleaned if line)
    return f"{reply}." if reply else SPEECH_FALLBACK


class AssistantService:
    """Interprets a command and executes the resulting actions."""

    def __init__(self, dispatcher: ActionDispatcher) -> None:
        self._dispatcher = dispatcher

    async def run_command(
        self,
        text: str,
        user_id: str | None = None,
        user_email: str | None = None,
        timezone: str | None = None,
        source: str = "text",
        now: datetime | None = None,
    ) -> CommandResult:
        """Run one command end to end.

        Returns the dispatcher's log lines when actions ran, otherwise the
        interpreter's own log lines (e.g. a clarification or an error).
        """
        try:
            ctx = DispatchContext.resolve(user_id, user_email, timezone, now)
            plan = await interpret(text, ctx, source=source)
            if not plan.actions:
                return CommandResult(actions=[], log_lines=plan.log_lines)
            log_lines = await self._dispatcher.execute_actions(plan.actions, ctx)
            return CommandResult(actions=plan.actions, log_lines=log_lines)
        except Exception as exc:
            logger.exception("Command failed: %r", text[:80] if text else text)
            return CommandResult(log_lines=[f"[error] Assistant failed: {exc}"])
