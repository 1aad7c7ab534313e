"""
TaskPilot — Audio Transcriber.

Voice notes are transcribed with OpenAI (WHISPER_ENABLED / TRANSCRIBE_MODEL),
then tidied by the LLM (punctuation, casing, filler words) before being
handed to the assistant exactly like a typed command.
"""

from __future__ import annotations

import logging
from pathlib import Path

from openai import AsyncOpenAI

from taskpilot.config import settings
from taskpilot.core import llm

logger = logging.getLogger(__name__)

_client = AsyncOpenAI(api_key=settings.OPENAI_API_KEY)

CLEANUP_PROMPT = (
    "Fix the provided transcription. Add punctuation, improve casing, remove "
    "filler words, and keep the intent intact. Respond with only the cleaned sentence."
)


class TranscriptionError(Exception):
    """Raised when a voice note cannot be turned into text."""


async def transcribe_audio(file_path: str) -> str:
    """Transcribe an audio file (OGG, MP3, WebM, ...).

    Raises:
        TranscriptionError: transcription is disabled, the API call failed,
            or nothing intelligible was heard.
    """
    if not settings.WHISPER_ENABLED:
        raise TranscriptionError("Voice transcription is disabled")

    name = Path(file_path).name
    try:
        with open(file_path, "rb") as audio_file:
            response = await _client.audio.transcriptions.create(
                model=settings.TRANSCRIBE_MODEL,
                file=audio_file,
            )
    except Exception as exc:
        logger.error("Transcription failed for %s: %s", name, exc)
        raise TranscriptionError(f"Transcription failed: {exc}") from exc

    text = (response.text or "").strip()
    if not text:
        raise TranscriptionError("No speech detected")
    logger.info("Transcribed %d chars from %s", len(text), name)
    return text


async def clean_transcript(text: str) -> str:
    """Return a cleaned-up transcript; falls back to the raw text on any failure."""
    raw = text.strip()
    if not raw or not llm.is_configured():
        return raw
    try:
        cleaned = (await llm.complete(CLEANUP_PROMPT, raw, max_tokens=256)).strip()
    except Exception as exc:
        logger.warning("Transcript cleanup failed, using raw text: %s", exc)
        return raw
    return cleaned or raw
