"""
TaskPilot — Telegram Bot.

The hosting transport: every typed or spoken command arrives here and is
handed to AssistantService. The bot only renders results; all task, calendar
and email logic lives in core.

Security-first: unauthorized users are silently ignored.
"""

from __future__ import annotations

import logging
import tempfile
from functools import wraps
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Coroutine

from telegram import Update
from telegram.ext import (
    Application,
    ApplicationBuilder,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from taskpilot.config import settings
from taskpilot.core.actions import PlanDay
from taskpilot.core.assistant import AssistantService, build_speech_reply
from taskpilot.core.dispatcher import DispatchContext

if TYPE_CHECKING:
    from taskpilot.core.dispatcher import ActionDispatcher

logger = logging.getLogger(__name__)

# Telegram rejects messages longer than this
MAX_MESSAGE_CHARS = 4096


# ---------------------------------------------------------------------------
# Security: silent-ignore decorator
# ---------------------------------------------------------------------------


def authorized_only(
    func: Callable[..., Coroutine[Any, Any, None]],
) -> Callable[..., Coroutine[Any, Any, None]]:
    """Decorator that silently ignores messages from unauthorized users.

    Does NOT send any response to strangers — the bot must not reveal
    its existence to unauthorized users.
    """

    @wraps(func)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        user = update.effective_user
        if user is None or user.id not in settings.ALLOWED_USER_IDS:
            uid = user.id if user else "unknown"
            logger.warning("Unauthorized access attempt from user_id=%s", uid)
            return  # Silent ignore
        return await func(update, context)

    return wrapper


def _user_id(update: Update) -> str:
    return str(update.effective_user.id)


async def _reply(update: Update, text: str) -> None:
    if len(text) > MAX_MESSAGE_CHARS:
        text = text[: MAX_MESSAGE_CHARS - 1] + "…"
    await update.message.reply_text(text)


async def _run_command(
    text: str, update: Update, context: ContextTypes.DEFAULT_TYPE, source: str,
) -> None:
    assistant: AssistantService = context.bot_data["assistant"]
    result = await assistant.run_command(
        text,
        user_id=_user_id(update),
        timezone=settings.TIMEZONE,
        source=source,
    )
    await _reply(update, build_speech_reply(result.log_lines, source))


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


@authorized_only
async def cmd_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /start — welcome message."""
    await update.message.reply_text(
        "Welcome to TaskPilot!\n\n"
        "Tell me what you need in plain words, typed or as a voice note:\n"
        "• \"Remind me to file taxes on Thursday\"\n"
        "• \"Lunch with Jeremy tomorrow at 12\"\n"
        "• \"Move dinner with Jasper one hour later\"\n"
        "• \"Plan my day\"\n\n"
        "Type /help for the command list."
    )


@authorized_only
async def cmd_help(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /help — list available commands."""
    await update.message.reply_text(
        "Available commands:\n"
        "/plan [YYYY-MM-DD] — Time-blocked plan for today or the given day\n"
        "/help — Show this message\n\n"
        "Anything else you send is treated as a command for the assistant."
    )


@authorized_only
async def cmd_plan(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /plan [date] — run the day planner directly, skipping the LLM."""
    dispatcher: ActionDispatcher = context.bot_data["dispatcher"]
    date_iso = context.args[0] if context.args else None
    ctx = DispatchContext.resolve(user_id=_user_id(update), timezone=settings.TIMEZONE)
    log_lines = await dispatcher.execute_actions([PlanDay(date_iso=date_iso)], ctx)
    await _reply(update, "\n".join(log_lines))


# ---------------------------------------------------------------------------
# Message handlers
# ---------------------------------------------------------------------------


@authorized_only
async def handle_text(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle plain text messages — run them as assistant commands."""
    await _run_command(update.message.text, update, context, source="text")


@authorized_only
async def handle_voice(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle voice messages — transcribe via Whisper, tidy, then run."""
    from taskpilot.core.transcriber import TranscriptionError, clean_transcript, transcribe_audio

    voice = update.message.voice
    tmp_path: str | None = None

    try:
        voice_file = await context.bot.get_file(voice.file_id)
        with tempfile.NamedTemporaryFile(suffix=".ogg", delete=False) as tmp:
            tmp_path = tmp.name
        await voice_file.download_to_drive(tmp_path)

        text = await clean_transcript(await transcribe_audio(tmp_path))
        logger.info("Voice transcribed: %s", text[:80])
    except TranscriptionError as exc:
        logger.warning("Voice note not transcribed: %s", exc)
        await update.message.reply_text(f"Sorry, I couldn't process your voice message: {exc}.")
        return
    except Exception as exc:
        logger.error("Voice handling error: %s", exc)
        await update.message.reply_text(
            "Sorry, I couldn't process your voice message. Please try again."
        )
        return
    finally:
        if tmp_path:
            Path(tmp_path).unlink(missing_ok=True)

    await update.message.reply_text(f"🎤 I heard: {text}")
    await _run_command(text, update, context, source="voice")


# ---------------------------------------------------------------------------
# App builder
# ---------------------------------------------------------------------------


def build_dispatcher() -> ActionDispatcher:
    """Wire the default SQLite stores and Google adapters."""
    from taskpilot.adapters.gmail import GmailAdapter
    from taskpilot.adapters.google_calendar import GoogleCalendarAdapter
    from taskpilot.core.dispatcher import ActionDispatcher
    from taskpilot.data.db import InfoDB, ProjectDB, TaskDB

    return ActionDispatcher(
        tasks=TaskDB(),
        projects=ProjectDB(),
        info=InfoDB(),
        calendar=GoogleCalendarAdapter(),
        email=GmailAdapter(),
    )


def build_app(dispatcher: ActionDispatcher | None = None) -> Application:
    """Build and configure the Telegram Application with all handlers.

    Args:
        dispatcher: Action dispatcher. Defaults to SQLite stores plus
                    Google Calendar and Gmail adapters.
    """
    app = ApplicationBuilder().token(settings.TELEGRAM_BOT_TOKEN).build()

    if dispatcher is None:
        dispatcher = build_dispatcher()

    app.bot_data["dispatcher"] = dispatcher
    app.bot_data["assistant"] = AssistantService(dispatcher)

    app.add_handler(CommandHandler("start", cmd_start))
    app.add_handler(CommandHandler("help", cmd_help))
    app.add_handler(CommandHandler("plan", cmd_plan))
    app.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, handle_text))
    app.add_handler(MessageHandler(filters.VOICE, handle_voice))

    logger.info("Telegram bot application built with %d handlers", len(app.handlers[0]))
    return app


def main() -> None:
    """Entry point: build the app and start polling."""
    if not settings.TELEGRAM_BOT_TOKEN:
        raise SystemExit("TELEGRAM_BOT_TOKEN is not set. Add it to .env and try again.")
    logger.info("Starting TaskPilot bot...")
    app = build_app()
    app.run_polling()


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    main()
