"""
Configuration using Pydantic settings.

Configuration is loaded from environment variables with the PROCLOG_ prefix,
and can be overridden via a YAML config file.
"""

from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LoggerSettings(BaseSettings):
    """Debug logger behaviour settings."""

    model_config = SettingsConfigDict(
        env_prefix="PROCLOG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: str = Field(default="INFO", description="Log level for the CLI")

    # Stored message handling
    message_max_length: int = Field(
        default=512,
        gt=0,
        le=512,
        description="Max stored message length (column width is 512)",
    )
    truncation_marker: str = Field(
        default="...[truncated]",
        description="Suffix marking a truncated message",
    )
    recovery_message: str = Field(
        default="ephemeral store reset",
        description="Entry recorded when the ephemeral table had to be recreated",
    )
    cleanup_prefix: str = Field(
        default="cleanup() ",
        description="Prefix for the final message written by cleanup",
    )
    mirror_to_logging: bool = Field(
        default=True,
        description="Also emit stored messages on the Python logger at DEBUG",
    )

    # Config file path
    config_path: Path | None = Field(default=None, description="Path to YAML config file")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v = v.upper()
        if v not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return v

    @model_validator(mode="after")
    def validate_marker_fits(self) -> "LoggerSettings":
        """The truncation marker must leave room for message text."""
        if self.message_max_length <= len(self.truncation_marker):
            raise ValueError(
                f"message_max_length ({self.message_max_length}) must be greater than "
                f"the truncation marker length ({len(self.truncation_marker)})"
            )
        return self


class DatabaseSettings(BaseSettings):
    """Database configuration settings."""

    model_config = SettingsConfigDict(
        env_prefix="PROCLOG_DATABASE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Connection URL
    url: str = Field(
        default="sqlite:///proclog.db",
        description="Database connection URL",
    )
    echo: bool = Field(default=False, description="Echo SQL statements")

    # Pool settings (ignored for SQLite)
    pool_size: int = Field(default=5, description="Connection pool size")
    max_overflow: int = Field(default=10, description="Max overflow connections")
    pool_timeout: int = Field(default=30, description="Pool connection timeout in seconds")

    # Administration
    retention_days: int = Field(default=30, description="Default age cutoff for purge")


class Settings(BaseSettings):
    """Combined application settings."""

    logger: LoggerSettings = Field(default_factory=LoggerSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)

    def load_from_yaml(self, path: Path) -> None:
        """Load additional settings from YAML file."""
        if not path.exists():
            return

        with open(path) as f:
            config = yaml.safe_load(f)

        if not config:
            return

        if "logger" in config:
            for key, value in config["logger"].items():
                if hasattr(self.logger, key):
                    setattr(self.logger, key, value)

        if "database" in config:
            for key, value in config["database"].items():
                if hasattr(self.database, key):
                    setattr(self.database, key, value)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    settings = Settings()

    # Load from config file if specified
    if settings.logger.config_path:
        settings.load_from_yaml(settings.logger.config_path)

    return settings


def get_settings_dict() -> dict[str, Any]:
    """Get settings as dictionary (for display)."""
    settings = get_settings()
    return {
        "logger": {
            "log_level": settings.logger.log_level,
            "message_max_length": settings.logger.message_max_length,
            "truncation_marker": settings.logger.truncation_marker,
            "recovery_message": settings.logger.recovery_message,
            "cleanup_prefix": settings.logger.cleanup_prefix,
            "mirror_to_logging": settings.logger.mirror_to_logging,
        },
        "database": {
            # Credentials stay out of printed output
            "url": settings.database.url.split("@")[-1],
            "echo": settings.database.echo,
            "pool_size": settings.database.pool_size,
            "retention_days": settings.database.retention_days,
        },
    }
