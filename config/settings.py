"""Application configuration using Pydantic Settings."""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # LLM Backends - Optional
    groq_api_key: str | None = Field(None, description="Groq API key (fast query parsing)")
    groq_model: str = Field(default="llama-3.3-70b-versatile", description="Groq chat model")
    openai_api_key: str | None = Field(None, description="OpenAI API key")
    openai_model: str = Field(default="gpt-4o-mini", description="OpenAI chat model")
    anthropic_api_key: str | None = Field(None, description="Anthropic API key")
    anthropic_model: str = Field(default="claude-3-5-haiku-latest", description="Anthropic model")
    perplexity_api_key: str | None = Field(None, description="Perplexity API key (web search)")
    perplexity_model: str = Field(default="sonar", description="Perplexity model")
    gemini_api_key: str | None = Field(None, description="Google Gemini API key")
    gemini_model: str = Field(default="gemini-1.5-flash", description="Gemini model")

    # Timeouts (seconds)
    provider_timeout: float = Field(
        default=10.0, description="Default per-provider timeout when a provider declares none"
    )
    llm_timeout: float = Field(default=25.0, description="Timeout for LLM-backed providers")
    dispatch_deadline: float = Field(
        default=35.0, description="Global deadline for one provider fan-out"
    )
    normalizer_attempt_timeout: float = Field(
        default=6.0, description="Budget for each LLM query-parsing attempt"
    )
    consolidation_timeout: float = Field(
        default=30.0, description="Deadline for the consolidation race across LLM backends"
    )

    # Early Exit
    early_exit_confidence: float = Field(
        default=0.8, description="Confidence above which an authoritative result stops dispatch"
    )
    early_exit_min_length: int = Field(
        default=500, description="Minimum text length for an early-exit candidate"
    )

    # Consolidation
    consolidation_min_length: int = Field(
        default=400, description="Minimum text length for a candidate to count as full-length"
    )
    consolidate_when_synced: bool = Field(
        default=False, description="Also consolidate when the best candidate is time-synced"
    )

    # Cache Configuration
    cache_ttl_seconds: int = Field(
        default=604800, description="TTL in seconds for stored lyrics (default: 7 days)"
    )
    cache_write_threshold: float = Field(
        default=0.7, description="Minimum confidence before a result is written to the cache"
    )
    memory_cache_maxsize: int = Field(
        default=1000, description="Maximum entries in the in-process lyrics cache"
    )
    memory_cache_ttl: int = Field(
        default=3600, description="TTL in seconds for the in-process lyrics cache"
    )
    database_url: str | None = Field(
        None, description="PostgreSQL connection URL for the lyrics store"
    )
    lyrics_db_path: Path = Field(
        default=Path("lyrics.db"), description="SQLite lyrics store used when no DATABASE_URL"
    )

    @property
    def resolved_lyrics_db_path(self) -> Path:
        """Get the lyrics database path, handling empty env var case."""
        if not str(self.lyrics_db_path) or str(self.lyrics_db_path) == ".":
            return Path("lyrics.db")
        return self.lyrics_db_path

    # Scraper Rate Limiting Configuration
    scraper_rate_limit: int = Field(
        default=60, description="Max scraper requests per minute across all sites"
    )
    scraper_max_concurrent: int = Field(
        default=4, description="Max concurrent scraper requests"
    )
    scraper_max_retries: int = Field(
        default=1, description="Max retry attempts on 429 rate limit errors"
    )

    # Application Configuration
    host: str = Field(default="0.0.0.0", description="Host to bind the server to")
    port: int = Field(default=8000, description="Port to run the server on")
    log_level: str = Field(default="INFO", description="Logging level")
    enable_telemetry: bool = Field(default=True, description="Enable PostHog telemetry")
    admin_token: str | None = Field(None, description="Bearer token for admin endpoints")

    # PostHog Configuration
    posthog_api_key: str | None = Field(None, description="PostHog API key for telemetry")
    posthog_host: str = Field(default="https://us.i.posthog.com", description="PostHog host URL")

    # Sentry Configuration
    sentry_dsn: str | None = Field(None, description="Sentry DSN for error tracking")

    # Application Metadata
    app_name: str = Field(default="Lyrics-Resolver", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
