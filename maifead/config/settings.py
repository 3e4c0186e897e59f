"""
Maifead Configuration System
============================

Configuration management with environment variables and Pydantic models.
Environment variables (``MAIFEAD_`` prefix, ``__`` for nested sections)
override Field defaults.
"""

import os
from pathlib import Path
from typing import Optional
from enum import Enum

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings

from ..utils.exceptions import ConfigurationError, ErrorCode


DEFAULT_USER_AGENT = "Maifead/1.0 (+https://github.com/maifead/maifead; feed reader)"


class LogLevel(str, Enum):
    """Available log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class FetchSettings(BaseModel):
    """Remote fetch and batch refresh configuration."""
    timeout_seconds: float = Field(default=10.0, gt=0, le=120, description="Per-request timeout")
    user_agent: str = Field(default=DEFAULT_USER_AGENT, description="User-Agent sent with every request")
    max_concurrent: int = Field(default=5, ge=1, le=50, description="Concurrent source refreshes in a batch")
    batch_timeout_seconds: float = Field(default=300.0, gt=0, le=3600, description="Upper bound for one batch refresh")
    default_fetch_interval_seconds: int = Field(default=3600, ge=60, description="Refresh interval for new sources")

    @field_validator('user_agent')
    @classmethod
    def validate_user_agent(cls, v):
        """User agent must not be blank."""
        if not v or not v.strip():
            raise ValueError("user_agent cannot be empty")
        return v.strip()


class RetentionSettings(BaseModel):
    """Retention sweep configuration."""
    default_days: int = Field(default=30, ge=0, le=3650, description="Retention for new sources (0 keeps forever)")
    sweep_hour: int = Field(default=2, ge=0, le=23, description="Hour of day to run the retention sweep")


class IconSettings(BaseModel):
    """Icon discovery configuration."""
    favicon_service_url: str = Field(
        default="https://www.google.com/s2/favicons?domain={host}&sz=128",
        description="Favicon service template, {host} is replaced with the site host",
    )
    youtube_default: str = Field(
        default="https://www.youtube.com/s/desktop/8f4c562e/img/favicon_144x144.png",
        description="Icon used when a channel avatar cannot be discovered",
    )
    reddit_default: str = Field(
        default="https://www.redditstatic.com/shreddit/assets/favicon/192x192.png",
        description="Icon used when a subreddit icon cannot be discovered",
    )
    bluesky_default: str = Field(
        default="https://bsky.app/static/apple-touch-icon.png",
        description="Icon used when a Bluesky avatar cannot be discovered",
    )

    @field_validator('favicon_service_url')
    @classmethod
    def validate_favicon_template(cls, v):
        """Template must carry a {host} placeholder."""
        if "{host}" not in v:
            raise ValueError("favicon_service_url must contain a {host} placeholder")
        return v


class EmbedSettings(BaseModel):
    """Embed rewriting configuration."""
    enabled: bool = Field(default=True, description="Rewrite known media links into embeds")
    twitch_parent: str = Field(default="localhost", description="Parent domain required by Twitch clip embeds")


class DatabaseSettings(BaseModel):
    """Database configuration."""
    path: str = Field(default="data/maifead.db", description="SQLite database file path")
    pool_size: int = Field(default=5, ge=1, le=20, description="Connection pool size")


class LoggingSettings(BaseModel):
    """Logging configuration."""
    level: LogLevel = Field(default=LogLevel.INFO, description="Global log level")
    file_path: Optional[str] = Field(default="logs/maifead.log", description="Log file path")
    max_file_size_mb: int = Field(default=10, ge=1, le=100, description="Max log file size in MB")
    backup_count: int = Field(default=5, ge=1, le=20, description="Number of log backup files")
    structured_logging: bool = Field(default=False, description="Use structured JSON logging")
    console_logging: bool = Field(default=True, description="Enable console logging")


class SchedulerSettings(BaseModel):
    """Background refresh service configuration."""
    check_interval_seconds: int = Field(default=300, ge=10, le=86400, description="Seconds between due-source checks")


class MaifeadSettings(BaseSettings):
    """Main application settings."""

    fetch: FetchSettings = Field(default_factory=FetchSettings)
    retention: RetentionSettings = Field(default_factory=RetentionSettings)
    icons: IconSettings = Field(default_factory=IconSettings)
    embeds: EmbedSettings = Field(default_factory=EmbedSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)

    app_name: str = Field(default="Maifead", description="Application name")
    version: str = Field(default="1.0.0", description="Application version")
    debug: bool = Field(default=False, description="Enable debug mode")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "env_nested_delimiter": "__",
        "env_prefix": "MAIFEAD_",
        "extra": "ignore",
    }

    def validate_configuration(self) -> None:
        """Validate paths and cross-field constraints."""
        errors = []

        try:
            db_path = Path(self.database.path)
            db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            errors.append(f"Invalid database path: {e}")

        if self.logging.file_path:
            try:
                log_path = Path(self.logging.file_path)
                log_path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                errors.append(f"Invalid log file path: {e}")

        if self.fetch.timeout_seconds > self.fetch.batch_timeout_seconds:
            errors.append("fetch.timeout_seconds must not exceed fetch.batch_timeout_seconds")

        if errors:
            raise ConfigurationError(
                f"Configuration validation failed: {'; '.join(errors)}",
                error_code=ErrorCode.CONFIG_INVALID
            )

    def is_production_mode(self) -> bool:
        """Check if running in production mode."""
        return not self.debug and os.getenv("ENV", "development").lower() == "production"

    def get_effective_log_level(self) -> str:
        """Get effective log level considering debug mode."""
        if self.debug:
            return "DEBUG"
        return self.logging.level.value


def load_settings() -> MaifeadSettings:
    """Load settings from environment variables and defaults.

    Returns:
        Loaded and validated settings

    Raises:
        ConfigurationError: If configuration is invalid
    """
    from dotenv import load_dotenv
    load_dotenv()

    try:
        settings = MaifeadSettings()
        settings.validate_configuration()
        return settings

    except ConfigurationError:
        raise
    except Exception as e:
        raise ConfigurationError(
            f"Failed to initialize settings: {e}",
            error_code=ErrorCode.CONFIG_INVALID
        )


# Global settings instance
_settings: Optional[MaifeadSettings] = None


def get_settings(reload: bool = False) -> MaifeadSettings:
    """Get global settings instance (singleton pattern).

    Args:
        reload: Force reload of settings

    Returns:
        Global settings instance
    """
    global _settings

    if _settings is None or reload:
        _settings = load_settings()

    return _settings
