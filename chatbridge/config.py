"""
Configuration Management
========================

Centralized configuration using Pydantic Settings.
Loads from environment variables and .env file.

Only process-wide defaults live here (timeouts, cache lifetime, logging).
Provider credentials are never read from the environment: callers own the
``ProviderConfig`` they pass to the client.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Shared config that all settings classes use to load .env
_shared_config = SettingsConfigDict(
    env_file=".env",
    env_file_encoding="utf-8",
    env_prefix="CHATBRIDGE_",
    extra="ignore",
)


class ClientSettings(BaseSettings):
    """Request orchestration defaults."""

    model_config = _shared_config

    text_timeout: float = Field(default=30.0, description="Timeout in seconds for text requests")
    multimodal_timeout: float = Field(
        default=90.0,
        description="Timeout in seconds for requests carrying an image (image analysis is slower)",
    )
    stream_timeout: float = Field(
        default=60.0,
        description="Seconds to wait for the response headers of a streaming request",
    )
    enable_cache: bool = Field(default=True, description="Cache non-streaming responses")
    cache_ttl: float = Field(default=24 * 60 * 60, description="Cache entry lifetime in seconds")
    image_quality: int = Field(default=80, description="JPEG quality used when re-encoding images (1-100)")

    @field_validator("text_timeout", "multimodal_timeout", "stream_timeout", "cache_ttl")
    @classmethod
    def must_be_positive(cls, v: float) -> float:
        """Reject zero or negative durations."""
        if v <= 0:
            raise ValueError("must be positive")
        return v

    @field_validator("image_quality")
    @classmethod
    def quality_in_range(cls, v: int) -> int:
        """Keep JPEG quality within Pillow's accepted range."""
        if not 1 <= v <= 100:
            raise ValueError("image_quality must be between 1 and 100")
        return v


class LoggingSettings(BaseSettings):
    """Logging configuration settings."""

    model_config = _shared_config

    debug: bool = Field(default=False, description="Pretty console logs instead of JSON")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Log level",
    )


class Settings(BaseSettings):
    """
    Main settings class combining all configuration sections.

    Usage:
        from chatbridge.config import get_settings
        settings = get_settings()
        print(settings.client.text_timeout)
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Nested settings
    client: ClientSettings = Field(default_factory=ClientSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings: Library settings loaded from environment.
    """
    return Settings()
