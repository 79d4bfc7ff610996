"""Application configuration."""

import os
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    supabase_url: str
    supabase_service_key: str
    openai_api_key: str
    openai_model: str = "gpt-5.2"
    openai_reasoning_effort: str = "low"
    openai_store: bool = False
    openai_web_search: bool = True
    extraction_timeout_seconds: float = 180.0
    extraction_max_attempts: int = 3
    extraction_backoff_seconds: float = 2.0
    capture_stop_timeout_seconds: float = 0.5
    capture_locale: str = "en-US"
    save_watchdog_seconds: float = 10.0
    prefetch_window_days: int = 7
    context_days: int = 5
    timezone: str = "UTC"
    default_calories: int = 2700
    default_protein: int = 150
    default_carbs: int = 300
    default_fat: int = 90
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )


def parse_timezone(raw: str | None) -> ZoneInfo:
    """Parse the configured local timezone, falling back to UTC."""
    if raw is None:
        return ZoneInfo("UTC")
    cleaned = raw.strip()
    if not cleaned:
        return ZoneInfo("UTC")
    try:
        return ZoneInfo(cleaned)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Unknown timezone: {cleaned}") from exc
