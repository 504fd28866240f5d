"""
Event Discovery Core Configuration

Configuration management with environment variable support.
Covers the in-memory cache engine, its snapshot persistence and the
resilience layer that guards outbound event-provider calls.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from typing import Optional
from functools import lru_cache
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Settings(BaseSettings):
    """Application settings with validation and secure defaults."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=True, extra="ignore"
    )

    # Environment settings
    ENVIRONMENT: str = Field(
        default="development", description="Application environment"
    )

    # Logging
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: str = Field(
        default="json", description="Log renderer: 'json' or 'console'"
    )

    # Cache engine
    CACHE_MAX_SIZE: int = Field(
        default=2000, ge=1, le=1_000_000, description="Maximum number of cache entries"
    )
    CACHE_DEFAULT_TTL_SECONDS: float = Field(
        default=300.0, gt=0, description="TTL applied when set() is called without one"
    )
    CACHE_SWEEP_INTERVAL_SECONDS: float = Field(
        default=60.0, gt=0, description="Expiry sweep and snapshot interval"
    )

    # Cache persistence
    CACHE_PERSISTENCE_ENABLED: bool = Field(
        default=True, description="Persist cache snapshots to durable storage"
    )
    CACHE_PERSISTENCE_BACKEND: str = Field(
        default="memory", description="Snapshot backend: memory, file or redis"
    )
    CACHE_PERSISTENCE_KEY: str = Field(
        default="events-cache-v1", description="Namespace key of the cache snapshot"
    )
    CACHE_PERSISTENCE_MAX_AGE_SECONDS: float = Field(
        default=3600.0,
        gt=0,
        description="Snapshots older than this are discarded on load",
    )
    CACHE_PERSISTENCE_MAX_ENTRIES: int = Field(
        default=100, ge=1, le=100_000, description="Entries kept per snapshot"
    )
    CACHE_PERSISTENCE_DIRECTORY: str = Field(
        default=".cache/event-discovery",
        description="Directory used by the file snapshot backend",
    )

    # Redis configuration
    REDIS_URL: str = Field(
        default="redis://localhost:6379", description="Redis connection URL"
    )

    # Outbound API call defaults
    API_DEFAULT_RETRIES: int = Field(
        default=3, ge=1, le=10, description="Attempts per external API call"
    )
    API_DEFAULT_RETRY_DELAY_SECONDS: float = Field(
        default=1.0, ge=0, le=60, description="Base delay for exponential backoff"
    )
    API_DEFAULT_TIMEOUT_SECONDS: Optional[float] = Field(
        default=10.0, gt=0, description="Per-attempt timeout"
    )

    # Circuit breaker settings
    CIRCUIT_BREAKER_FAILURE_THRESHOLD: int = Field(
        default=5, ge=1, le=100, description="Circuit breaker failure threshold"
    )
    CIRCUIT_BREAKER_RESET_TIMEOUT_SECONDS: float = Field(
        default=60.0,
        gt=0,
        description="Seconds an open circuit waits before a trial call",
    )
    CIRCUIT_BREAKER_MONITORING_PERIOD_SECONDS: float = Field(
        default=300.0,
        gt=0,
        description="Failures older than this are forgotten by cleanup",
    )
    RESILIENCE_CLEANUP_INTERVAL_SECONDS: float = Field(
        default=60.0, gt=0, description="Request history cleanup interval"
    )

    @field_validator("ENVIRONMENT")
    @classmethod
    def validate_environment(cls, v):
        """Validate environment value."""
        allowed = ["development", "test", "staging", "production"]
        if v not in allowed:
            raise ValueError(f"ENVIRONMENT must be one of: {allowed}")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"LOG_LEVEL must be one of: {allowed}")
        return v.upper()

    @field_validator("LOG_FORMAT")
    @classmethod
    def validate_log_format(cls, v):
        """Validate log renderer."""
        if v.lower() not in ("json", "console"):
            raise ValueError("LOG_FORMAT must be 'json' or 'console'")
        return v.lower()

    @field_validator("CACHE_PERSISTENCE_BACKEND")
    @classmethod
    def validate_persistence_backend(cls, v):
        """Validate snapshot backend name."""
        allowed = ["memory", "file", "redis"]
        if v.lower() not in allowed:
            raise ValueError(f"CACHE_PERSISTENCE_BACKEND must be one of: {allowed}")
        return v.lower()

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.ENVIRONMENT == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.ENVIRONMENT == "production"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
