"""
Configuration Settings.

This module defines the application configuration using Pydantic's BaseSettings.
It automatically loads all configuration from environment variables and .env file
without explicit dotenv loading.
"""

from typing import Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# =====================================================================
# Grouped Configuration Models
# =====================================================================

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


class UpstreamConfig(BaseModel):
    """Outbound panel HTTP configuration."""

    timeout: float = Field(
        default=30.0, alias="PANELHUB_UPSTREAM_TIMEOUT", description="Per-request timeout in seconds"
    )
    user_agent: str = Field(
        default=DEFAULT_USER_AGENT,
        alias="PANELHUB_UPSTREAM_USER_AGENT",
        description="Browser user agent sent to panels (some panels gate on it)",
    )

    model_config = {"populate_by_name": True}


class SchedulerConfig(BaseModel):
    """Recurring job configuration."""

    refresh_interval_minutes: int = Field(
        default=6,
        alias="PANELHUB_REFRESH_INTERVAL_MINUTES",
        description="Default refresh interval when a caller does not supply one",
    )
    checkin_interval_hours: int = Field(
        default=24, alias="PANELHUB_CHECKIN_INTERVAL_HOURS", description="Check-in cadence in hours"
    )
    log_page_size: int = Field(
        default=100, alias="PANELHUB_LOG_PAGE_SIZE", description="Page size used when walking panel logs"
    )
    log_max_pages: int = Field(
        default=10, alias="PANELHUB_LOG_MAX_PAGES", description="Hard ceiling on log pages per aggregation"
    )

    model_config = {"populate_by_name": True}


class ModelSyncConfig(BaseModel):
    """Model-sync retry configuration."""

    max_retries: int = Field(
        default=2, alias="PANELHUB_MODEL_SYNC_MAX_RETRIES", description="Retries after the first attempt"
    )
    base_delay: float = Field(
        default=1.0, alias="PANELHUB_MODEL_SYNC_BASE_DELAY", description="Backoff base delay in seconds"
    )
    jitter: float = Field(
        default=0.0, alias="PANELHUB_MODEL_SYNC_JITTER", description="Upper bound of random jitter in seconds"
    )

    model_config = {"populate_by_name": True}


# =====================================================================
# Main Settings Class
# =====================================================================


class Settings(BaseSettings):
    """
    Application settings model.

    All properties are automatically bound from environment variables and .env file.
    Pydantic's BaseSettings handles dotenv loading automatically via model_config.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=True,
        populate_by_name=True,
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
        alias="PANELHUB_LOG_LEVEL",
    )
    log_format: str = Field(
        default="detailed",
        description="Log line format (simple, detailed, json)",
        alias="PANELHUB_LOG_FORMAT",
    )
    log_file_dir: Optional[str] = Field(
        default=None,
        description="Directory for the log file; file logging is disabled when unset",
        alias="PANELHUB_LOG_FILE_DIR",
    )
    database_url: str = Field(
        default="sqlite+aiosqlite:///./panelhub.db",
        description="Async SQLAlchemy URL of the account/history database",
        alias="PANELHUB_DATABASE_URL",
    )

    # Flat aliases consumed by the grouped models below
    upstream_timeout: float = Field(default=30.0, alias="PANELHUB_UPSTREAM_TIMEOUT")
    upstream_user_agent: str = Field(default=DEFAULT_USER_AGENT, alias="PANELHUB_UPSTREAM_USER_AGENT")
    refresh_interval_minutes: int = Field(default=6, alias="PANELHUB_REFRESH_INTERVAL_MINUTES")
    checkin_interval_hours: int = Field(default=24, alias="PANELHUB_CHECKIN_INTERVAL_HOURS")
    log_page_size: int = Field(default=100, alias="PANELHUB_LOG_PAGE_SIZE")
    log_max_pages: int = Field(default=10, alias="PANELHUB_LOG_MAX_PAGES")
    model_sync_max_retries: int = Field(default=2, alias="PANELHUB_MODEL_SYNC_MAX_RETRIES")
    model_sync_base_delay: float = Field(default=1.0, alias="PANELHUB_MODEL_SYNC_BASE_DELAY")
    model_sync_jitter: float = Field(default=0.0, alias="PANELHUB_MODEL_SYNC_JITTER")

    # =====================================================================
    # Computed Properties (Grouped Configurations)
    # =====================================================================

    @property
    def upstream(self) -> UpstreamConfig:
        """Get outbound HTTP configuration from environment variables."""
        return UpstreamConfig.model_validate(self.model_dump(by_alias=True))

    @property
    def scheduler(self) -> SchedulerConfig:
        """Get scheduler configuration from environment variables."""
        return SchedulerConfig.model_validate(self.model_dump(by_alias=True))

    @property
    def model_sync(self) -> ModelSyncConfig:
        """Get model-sync configuration from environment variables."""
        return ModelSyncConfig.model_validate(self.model_dump(by_alias=True))


settings = Settings()
