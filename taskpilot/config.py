"""
TaskPilot — Centralized configuration.

Loads all settings from .env into a single validated Settings object.
Every other module reads configuration through the `settings` singleton.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (two levels up from taskpilot/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Telegram transport
    TELEGRAM_BOT_TOKEN: str = ""

    # LLM — provider-agnostic (gemini, anthropic, openai, cohere)
    LLM_PROVIDER: str = "gemini"
    LLM_MODEL: str = ""          # empty → smart default per provider
    LLM_API_KEY: str = ""

    # Audio — OpenAI Whisper (transcription only)
    OPENAI_API_KEY: str = ""
    WHISPER_ENABLED: bool = True
    TRANSCRIBE_MODEL: str = "whisper-1"

    # Google Calendar + Gmail
    GOOGLE_CREDENTIALS_PATH: str = "credentials.json"
    GOOGLE_TOKEN_PATH: str = "token.json"

    # SQLite (tasks, projects, remembered info)
    DATABASE_PATH: str = "data/taskpilot.db"

    # Security
    ALLOWED_USER_IDS: list[int] = []

    # Fallback identity when a request carries none
    ASSISTANT_USER_ID: str = ""

    # Logging
    LOG_LEVEL: str = "INFO"

    # Time handling
    TIMEZONE: str = "America/New_York"
    WORKDAY_START_HOUR: int = 8
    WORKDAY_END_HOUR: int = 18
    DEFAULT_EVENT_DURATION_MINUTES: int = 60

    @field_validator("ALLOWED_USER_IDS", mode="before")
    @classmethod
    def parse_user_ids(cls, v: str | list[int]) -> list[int]:
        if isinstance(v, list):
            return v
        if isinstance(v, str) and v.strip():
            return [int(uid.strip()) for uid in v.split(",") if uid.strip()]
        return []

    @field_validator(
        "WORKDAY_START_HOUR", "WORKDAY_END_HOUR", "DEFAULT_EVENT_DURATION_MINUTES",
        mode="before",
    )
    @classmethod
    def parse_int(cls, v: str | int) -> int:
        return int(v)

    @field_validator("WORKDAY_END_HOUR")
    @classmethod
    def check_hour(cls, v: int) -> int:
        if not 0 < v <= 24:
            raise ValueError(f"WORKDAY_END_HOUR must be in 1..24, got {v}")
        return v


def _load_settings() -> Settings:
    """Load settings from environment variables."""
    return Settings(
        TELEGRAM_BOT_TOKEN=os.getenv("TELEGRAM_BOT_TOKEN", ""),
        LLM_PROVIDER=os.getenv("LLM_PROVIDER", "gemini"),
        LLM_MODEL=os.getenv("LLM_MODEL", ""),
        LLM_API_KEY=os.getenv("LLM_API_KEY", ""),
        OPENAI_API_KEY=os.getenv("OPENAI_API_KEY", ""),
        WHISPER_ENABLED=os.getenv("WHISPER_ENABLED", "true"),
        TRANSCRIBE_MODEL=os.getenv("TRANSCRIBE_MODEL", "whisper-1"),
        GOOGLE_CREDENTIALS_PATH=os.getenv("GOOGLE_CREDENTIALS_PATH", "credentials.json"),
        GOOGLE_TOKEN_PATH=os.getenv("GOOGLE_TOKEN_PATH", "token.json"),
        DATABASE_PATH=os.getenv("DATABASE_PATH", "data/taskpilot.db"),
        ALLOWED_USER_IDS=os.getenv("ALLOWED_USER_IDS", ""),
        ASSISTANT_USER_ID=os.getenv("ASSISTANT_USER_ID", ""),
        LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO"),
        TIMEZONE=os.getenv("TIMEZONE", "America/New_York"),
        WORKDAY_START_HOUR=os.getenv("WORKDAY_START_HOUR", "8"),
        WORKDAY_END_HOUR=os.getenv("WORKDAY_END_HOUR", "18"),
        DEFAULT_EVENT_DURATION_MINUTES=os.getenv("DEFAULT_EVENT_DURATION_MINUTES", "60"),
    )


# Singleton — imported by all other modules as:
#   from taskpilot.config import settings
settings = _load_settings()
