"""
Configuration Management

Centralized configuration using Pydantic Settings. Every option can be set
through a ``QUERYSPEC_``-prefixed environment variable or a ``.env`` file.
"""

from typing import Literal, Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class QuerySettings(BaseSettings):
    """Query engine settings."""

    model_config = SettingsConfigDict(
        env_prefix="QUERYSPEC_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Pagination
    default_page_size: int = Field(default=10, ge=1)
    max_page_size: int = Field(default=100, ge=1)
    enable_offset: bool = Field(default=True)

    # Logging
    enable_query_logging: bool = Field(default=True)
    log_level: str = Field(default="INFO")

    # Caching
    enable_caching: bool = Field(default=False)
    cache_ttl: int = Field(default=300, ge=1)
    cache_key_prefix: str = Field(default="sqb:")
    cache_provider: Literal["memory", "redis"] = Field(default="memory")
    redis_url: str = Field(default="redis://localhost:6379/0")
    cache_coalesce_requests: bool = Field(default=False)

    # Validation
    enable_validation: bool = Field(default=True)

    # Performance monitoring (milliseconds)
    performance_threshold: int = Field(default=1000, ge=0)
    enable_performance_monitoring: bool = Field(default=True)

    @model_validator(mode="after")
    def _check_page_sizes(self) -> "QuerySettings":
        if self.default_page_size > self.max_page_size:
            raise ValueError(
                f"default_page_size ({self.default_page_size}) cannot exceed "
                f"max_page_size ({self.max_page_size})"
            )
        return self


# Global settings instance
_settings: Optional[QuerySettings] = None


def get_settings() -> QuerySettings:
    """Get or create the process-wide settings."""
    global _settings
    if _settings is None:
        _settings = QuerySettings()
    return _settings


def reset_settings():
    """Drop the cached settings (for testing or reload)."""
    global _settings
    _settings = None
