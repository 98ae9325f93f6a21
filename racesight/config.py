"""Application configuration using Pydantic settings."""

from datetime import date, datetime
from functools import lru_cache
from pathlib import Path
from typing import Literal
from zoneinfo import ZoneInfo

from pydantic_settings import BaseSettings, SettingsConfigDict

DataSource = Literal["export", "live", "auto"]

# Live page fetches are never allowed to hang longer than this
MAX_FETCH_TIMEOUT = 10.0


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="RACESIGHT_",
        extra="ignore",
    )

    # App
    debug: bool = False
    log_level: str = "INFO"
    racing_timezone: str = "Europe/London"

    # Inference service
    openai_api_key: str = ""
    ai_model: str = "gpt-4o-mini"
    mock_external: bool = False  # offline inference client for staging
    quota_per_minute: int = 15
    quota_per_day: int = 1000

    # Race-card data
    racecards_dir: Path = Path("./racecards")
    data_source: DataSource = "export"
    default_region: str = "GB"
    prefer_export_ratings: bool = False
    cache_ttl_seconds: float = 300.0
    fetch_min_interval: float = 2.0
    fetch_timeout: float = MAX_FETCH_TIMEOUT

    def model_post_init(self, __context) -> None:
        """Load OpenAI key from standard env var or .env file if not set."""
        import os
        from dotenv import dotenv_values

        if not self.openai_api_key:
            self.openai_api_key = os.getenv("OPENAI_API_KEY", "")
        if not self.openai_api_key:
            env_vals = dotenv_values(".env")
            self.openai_api_key = env_vals.get("OPENAI_API_KEY", "") or ""
        if self.fetch_timeout > MAX_FETCH_TIMEOUT:
            self.fetch_timeout = MAX_FETCH_TIMEOUT

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.racing_timezone)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Export for convenience
settings = get_settings()


def racing_now() -> datetime:
    """Current time in the racing timezone."""
    return datetime.now(settings.tz)


def racing_today() -> date:
    """Today's date in the racing timezone (drives the daily quota rollover)."""
    return racing_now().date()
