"""
Configuration settings for the yuliao phrase drill.

Uses Pydantic Settings for environment variable management with .env file support.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="YULIAO_",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Language Model API
    # ========================================
    llm_api_key: str = Field(
        default="",
        description="Bearer token for the chat-completions API",
    )
    llm_api_base: str = Field(
        default="https://open.bigmodel.cn/api/paas/v4",
        description="Base URL of an OpenAI-compatible chat-completions API",
    )
    llm_model: str = Field(
        default="GLM-4.5-Air",
        description="Chat model used for content generation and scoring",
    )
    generation_timeout_seconds: float = Field(
        default=60.0,
        description="Timeout for single-phrase context generation",
    )
    scenario_timeout_seconds: float = Field(
        default=120.0,
        description="Timeout for multi-phrase scenario generation",
    )
    evaluation_timeout_seconds: float = Field(
        default=30.0,
        description="Timeout for answer scoring",
    )

    # ========================================
    # Retry Policy
    # ========================================
    retry_attempts: int = Field(
        default=3,
        description="Retries after the first attempt for transient errors",
    )
    retry_base_delay_seconds: float = Field(
        default=2.0,
        description="First backoff delay; doubles on every retry",
    )

    # ========================================
    # Content Cache
    # ========================================
    cache_expiry_seconds: int = Field(
        default=3600,
        description="Lifetime of a generated-content cache entry",
    )

    # ========================================
    # Session & Prefetch
    # ========================================
    initial_batch_size: int = Field(
        default=3,
        description="Items generated in the foreground before a session becomes interactive",
    )
    prefetch_target: int = Field(
        default=10,
        description="Total items the learn queue is sized to prefetch",
    )
    background_batch_size: int = Field(
        default=3,
        description="Items generated per background prefetch batch",
    )
    prefetch_horizon: int = Field(
        default=3,
        description="How many upcoming items the prefetcher keeps ready",
    )
    default_session_target: int = Field(
        default=10,
        description="Successful answers needed to complete a learn session",
    )
    default_review_target: int = Field(
        default=5,
        description="Phrases per review scenario",
    )
    default_topic: str = Field(
        default="General Daily Conversation",
        description="Scenario topic used when none is chosen",
    )
    pass_score: int = Field(
        default=70,
        description="Minimum AI score (0-100) counted as a successful answer",
    )

    # ========================================
    # Storage
    # ========================================
    data_dir: Path = Field(
        default=Path.home() / ".yuliao",
        description="Directory holding the corpus file and content cache",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="WARNING",
        description="Logging verbosity level",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (None for stderr only)",
    )

    @property
    def has_llm_config(self) -> bool:
        """Check if a language model API key is configured."""
        return bool(self.llm_api_key)

    @property
    def corpus_path(self) -> Path:
        return self.data_dir / "corpus.json"

    @property
    def cache_dir(self) -> Path:
        return self.data_dir / "cache"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
