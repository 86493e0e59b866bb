"""
Goal Tracker — Centralized configuration.

Loads all settings from .env and validates required keys.
This module is the foundation for every other module in the project.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (two levels up from src/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Telegram
    TELEGRAM_BOT_TOKEN: str

    # LLM — provider-agnostic (gemini, anthropic, openai, cohere)
    LLM_PROVIDER: str = "gemini"
    LLM_MODEL: str = ""          # empty → smart default per provider
    LLM_API_KEY: str
    PLAN_MAX_TOKENS: int = 1024  # response cap for one daily plan

    # SQLite
    DATABASE_PATH: str = "data/goals.db"

    # Optional allowlist of chat ids (empty → anyone may use the bot)
    ALLOWED_USER_IDS: list[int] = []

    # Schedules: hours are local to TIMEZONE, never the host clock
    TIMEZONE: str = "UTC"
    DAILY_PLAN_HOUR: int = 6
    REMINDER_HOURS: list[int] = [9, 12, 15, 18, 21]

    # Pauses between users in batch jobs (LLM / Telegram rate limits)
    PLAN_BATCH_DELAY_SECONDS: float = 2.0
    REMINDER_BATCH_DELAY_SECONDS: float = 0.5

    # How long a half-finished /addgoal or /addmany waits for the reply
    PENDING_INPUT_TTL_MINUTES: int = 30

    @field_validator("ALLOWED_USER_IDS", "REMINDER_HOURS", mode="before")
    @classmethod
    def parse_int_list(cls, v: str | list[int]) -> list[int]:
        if isinstance(v, list):
            return v
        if isinstance(v, str) and v.strip():
            return [int(item.strip()) for item in v.split(",") if item.strip()]
        return []

    @field_validator("DAILY_PLAN_HOUR", mode="before")
    @classmethod
    def parse_hour(cls, v: str | int) -> int:
        hour = int(v)
        if not 0 <= hour <= 23:
            raise ValueError(f"DAILY_PLAN_HOUR must be 0-23, got {hour}")
        return hour


def _load_settings() -> Settings:
    """Load settings from environment, validating required keys."""
    token = os.getenv("TELEGRAM_BOT_TOKEN", "")
    llm_api_key = os.getenv("LLM_API_KEY", "")

    if not token or token.startswith("your-"):
        print("ERROR: TELEGRAM_BOT_TOKEN is missing or not set in .env", file=sys.stderr)
        sys.exit(1)

    if not llm_api_key or llm_api_key.startswith("your-"):
        print("ERROR: LLM_API_KEY is missing or not set in .env", file=sys.stderr)
        sys.exit(1)

    return Settings(
        TELEGRAM_BOT_TOKEN=token,
        LLM_PROVIDER=os.getenv("LLM_PROVIDER", "gemini"),
        LLM_MODEL=os.getenv("LLM_MODEL", ""),
        LLM_API_KEY=llm_api_key,
        PLAN_MAX_TOKENS=os.getenv("PLAN_MAX_TOKENS", "1024"),
        DATABASE_PATH=os.getenv("DATABASE_PATH", "data/goals.db"),
        ALLOWED_USER_IDS=os.getenv("ALLOWED_USER_IDS", ""),
        TIMEZONE=os.getenv("TIMEZONE", "UTC"),
        DAILY_PLAN_HOUR=os.getenv("DAILY_PLAN_HOUR", "6"),
        REMINDER_HOURS=os.getenv("REMINDER_HOURS", "9,12,15,18,21"),
        PLAN_BATCH_DELAY_SECONDS=os.getenv("PLAN_BATCH_DELAY_SECONDS", "2.0"),
        REMINDER_BATCH_DELAY_SECONDS=os.getenv("REMINDER_BATCH_DELAY_SECONDS", "0.5"),
        PENDING_INPUT_TTL_MINUTES=os.getenv("PENDING_INPUT_TTL_MINUTES", "30"),
    )


# Singleton — imported by all other modules as:
#   from src.config import settings
settings = _load_settings()
