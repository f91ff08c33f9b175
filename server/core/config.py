"""Environment-driven configuration with Pydantic v2."""

from typing import Literal, Optional
from pathlib import Path
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from constants import (
    DEFAULT_CHECK_SCHEDULE,
    DEFAULT_GITHUB_API_URL,
    DEFAULT_REPOSITORY,
    DEFAULT_STATUS_HISTORY_LIMIT,
    DEFAULT_USER_AGENT,
)


class Settings(BaseSettings):
    """Application settings driven entirely by environment variables."""

    # Server Configuration
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8787, ge=1024, le=65535)
    debug: bool = Field(default=False)
    workers: int = Field(default=1, ge=1, le=8)

    # Logging
    log_level: str = Field(default="INFO")
    log_format: Literal["json", "console"] = Field(default="json")
    log_file: Optional[str] = Field(default=None)

    # Upstream (GitHub releases)
    github_repository: str = Field(default=DEFAULT_REPOSITORY)
    github_api_url: str = Field(default=DEFAULT_GITHUB_API_URL)
    github_token: Optional[str] = Field(default=None)  # raises the rate limit only
    user_agent: str = Field(default=DEFAULT_USER_AGENT)
    http_timeout: float = Field(default=10.0, ge=1.0, le=120.0)

    # Downstream deploy hook; checked per call, not at load time
    render_webhook_url: Optional[str] = Field(default=None)

    # State store (None = no store bound)
    store_backend: Optional[Literal["sqlite", "redis", "memory"]] = Field(default="sqlite")
    database_url: str = Field(default="sqlite+aiosqlite:///./data/tag_monitor.db")
    redis_url: Optional[str] = Field(default=None)

    # Scheduled check
    scheduler_enabled: bool = Field(default=True)
    check_schedule: str = Field(default=DEFAULT_CHECK_SCHEDULE)
    scheduler_timezone: str = Field(default="UTC")
    check_on_startup: bool = Field(default=False)

    # Status reporting
    status_history_limit: int = Field(default=DEFAULT_STATUS_HISTORY_LIMIT, ge=1, le=100)

    # Optional lease around the compare-and-trigger step
    check_lock_enabled: bool = Field(default=False)
    check_lock_ttl: int = Field(default=300, ge=10, le=3600)

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v):
        """Ensure database directory exists for SQLite."""
        if v and v.startswith("sqlite"):
            if ":///" in v:
                db_path = v.split("///")[1]
                if db_path and db_path != ":memory:":
                    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        return v

    @field_validator("check_schedule")
    @classmethod
    def validate_check_schedule(cls, v):
        """Accept 5-field or 6-field cron expressions."""
        if len(v.split()) not in (5, 6):
            raise ValueError("check_schedule must be a 5- or 6-field cron expression")
        return v

    @field_validator("github_api_url")
    @classmethod
    def strip_trailing_slash(cls, v):
        return v.rstrip("/")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_parse_none_str="none",
    )
