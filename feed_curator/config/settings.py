"""Application settings using Pydantic Settings for environment-based configuration."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, RedisDsn
from pydantic_settings import BaseSettings, SettingsConfigDict

from feed_curator.retry.backoff import RetryConfig


class Settings(BaseSettings):
    """
    Central configuration for feed-curator.

    All settings can be overridden via environment variables.
    Prefix is not used to allow standard env var names (e.g., REDIS_URL).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    environment: Literal["development", "staging", "production"] = "development"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    debug: bool = False  # Forces DEBUG logging regardless of log_level

    # Redis (checkpoints, user state, tracked sources)
    redis_url: RedisDsn = Field(default="redis://localhost:6379/0")
    redis_key_prefix: str = "feed_curator"

    # Comma-separated source ids seeded into the registry on startup
    tracked_sources: str | None = None

    # Polling
    concurrency: int = Field(default=5, ge=1, le=100)
    poll_interval_seconds: int = Field(default=3600, ge=1)
    max_items_per_cycle: int = Field(default=0, ge=0)
    ignore_checkpoint: bool = False  # Debug only: never advances checkpoints
    cycle_error_backoff_seconds: float = Field(default=5.0, gt=0)

    # Observed-item cache
    observed_cache_ttl_hours: float = Field(default=24.0, gt=0)

    # Enrichment (yt-dlp) and its file cache
    ytdlp_binary: str = "yt-dlp"
    enrichment_cache_dir: str = "./cache/ytdlp"
    enrichment_cache_enabled: bool = True
    enrichment_timeout_seconds: float = Field(default=60.0, gt=0)
    enrichment_max_retries: int = Field(default=2, ge=0, le=10)

    # HTTP retry configuration
    max_http_retries: int = Field(default=3, ge=0, le=10)
    initial_backoff_seconds: float = Field(default=1.0, ge=0.0)
    max_backoff_seconds: float = Field(default=30.0, ge=1.0, le=300.0)
    backoff_factor: float = Field(default=2.0, ge=1.0)
    max_total_timeout_seconds: float = Field(default=60.0, ge=0.0)
    feed_timeout_seconds: float = Field(default=30.0, gt=0)

    # Observability
    metrics_port: int = 8000

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @property
    def tracked_source_ids(self) -> list[str]:
        """Parse the comma-separated seed list, dropping blanks."""
        if not self.tracked_sources:
            return []
        return [s.strip() for s in self.tracked_sources.split(",") if s.strip()]

    def retry_config(self) -> RetryConfig:
        """Retry tuning for feed fetches."""
        return RetryConfig(
            max_retries=self.max_http_retries,
            initial_backoff=self.initial_backoff_seconds,
            max_backoff=self.max_backoff_seconds,
            backoff_factor=self.backoff_factor,
            max_total_timeout=self.max_total_timeout_seconds,
        )

    def enrichment_retry_config(self) -> RetryConfig:
        """Retry tuning for enrichment; shares backoff bounds, has its own attempt count."""
        return RetryConfig(
            max_retries=self.enrichment_max_retries,
            initial_backoff=self.initial_backoff_seconds,
            max_backoff=self.max_backoff_seconds,
            backoff_factor=self.backoff_factor,
            max_total_timeout=self.max_total_timeout_seconds,
        )

    def cycle_backoff_config(self) -> RetryConfig:
        """Delays between polling cycles after consecutive failures, capped at the poll interval."""
        return RetryConfig(
            initial_backoff=min(self.cycle_error_backoff_seconds, self.poll_interval_seconds),
            max_backoff=self.poll_interval_seconds,
            backoff_factor=self.backoff_factor,
            jitter_factor=0.25,
        )


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are loaded only once.
    Clear cache with get_settings.cache_clear() if needed.
    """
    return Settings()
