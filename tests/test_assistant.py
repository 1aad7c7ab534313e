"""Tests for taskpilot.core.assistant — run_command and speech rendering."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from taskpilot.core.actions import PlanDay
from taskpilot.core.assistant import AssistantService, build_speech_reply
from taskpilot.core.normalizer import NormalizedResponse


class TestBuildSpeechReply:
    def test_empty(self):
        assert build_speech_reply([], "voice") == "Okay, I processed that, but there was nothing to do."

    def test_text_source_joins_lines(self):
        assert build_speech_reply(["[assistant] Added 1 task(s).", "Deleted 1 calendar event."], "text") == (
            "[assistant] Added 1 task(s).\nDeleted 1 calendar event."
        )

    def test_voice_strips_prefix_and_emoji(self):
        reply = build_speech_reply(["[assistant] Added 1 task(s).", "🗓 Created 1 event(s)."], "voice")
        assert reply == "Added 1 task(s). Created 1 event(s)."

    def test_voice_drops_errors_and_unsupported(self):
        lines = [
            "[assistant] Unsupported action: teleport",
            "[error] Action move_event failed: boom",
            "[assistant] [error] Missing user for create_tasks.",
            "Deleted 1 calendar event.",
        ]
        assert build_speech_reply(lines, "siri") == "Deleted 1 calendar event."

    def test_voice_keeps_last_three_lines(self):
        lines = ["[assistant] One.", "[assistant] Two.", "[assistant] Three.", "[assistant] Four."]
        assert build_speech_reply(lines, "voice") == "Two. Three. Four."

    def test_voice_splits_multiline_entries(self):
        entry = "[assistant] Here is a draft plan for Tue Apr 15:\n📅 9:00 AM–10:00 AM: Standup"
        assert build_speech_reply([entry], "voice").endswith("9:00 AM–10:00 AM: Standup.")

    def test_voice_fallback_when_everything_filtered(self):
        assert build_speech_reply(["[error] Action x failed: y"], "voice") == "Got it, I’ve updated your schedule."


class TestRunCommand:
    @pytest.mark.asyncio
    async def test_dispatches_actions(self, now):
        dispatcher = MagicMock()
        dispatcher.execute_actions = AsyncMock(return_value=["[assistant] Here is a draft plan for Tue Apr 15:"])
        plan = NormalizedResponse(actions=[PlanDay()], log_lines=["Planning."])
        with patch("taskpilot.core.assistant.interpret", new=AsyncMock(return_value=plan)) as interpret:
            result = await AssistantService(dispatcher).run_command("plan my day", user_id="u1", source="voice", now=now)

        assert result.actions == [PlanDay()]
        assert result.log_lines == ["[assistant] Here is a draft plan for Tue Apr 15:"]
        ctx = dispatcher.execute_actions.await_args.args[1]
        assert ctx.user_id == "u1"
        assert ctx.now == now
        assert interpret.await_args.kwargs["source"] == "voice"

    @pytest.mark.asyncio
    async def test_no_actions_returns_interpreter_lines(self, now):
        dispatcher = MagicMock()
        dispatcher.execute_actions = AsyncMock()
        plan = NormalizedResponse(actions=[], log_lines=["[error] Empty command."])
        with patch("taskpilot.core.assistant.interpret", new=AsyncMock(return_value=plan)):
            result = await AssistantService(dispatcher).run_command("", user_id="u1", now=now)

        assert result.actions == []
        assert result.log_lines == ["[error] Empty command."]
        dispatcher.execute_actions.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unexpected_failure_is_reported(self, now):
        dispatcher = MagicMock()
        dispatcher.execute_actions = AsyncMock(side_effect=RuntimeError("db locked"))
        plan = NormalizedResponse(actions=[PlanDay()])
        with patch("taskpilot.core.assistant.interpret", new=AsyncMock(return_value=plan)):
            result = await AssistantService(dispatcher).run_command("plan my day", user_id="u1", now=now)

        assert result.log_lines == ["[error] Assistant failed: db locked"]
