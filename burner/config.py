"""
Configuration management for the Burner engine.

Uses Pydantic Settings for type-safe configuration loading from environment variables.
All configuration is validated at startup to fail fast on misconfiguration.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings are validated at startup. Invalid values
    will raise clear validation errors.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # LLM API Configuration
    # ==========================================================================
    llm_api_keys: str = Field(
        default="",
        description="Comma-separated pool of API keys, rotated round-robin per call",
    )

    llm_base_url: str = Field(
        default="https://api.cerebras.ai/v1",
        description="Base URL of the OpenAI-compatible completion endpoint",
    )

    llm_model: str = Field(
        default="zai-glm-4.7",
        description="Model used for question generation and grading",
    )

    llm_temperature: float = Field(
        default=0.6,
        ge=0.0,
        le=2.0,
        description="Sampling temperature",
    )

    llm_top_p: float = Field(
        default=0.95,
        gt=0.0,
        le=1.0,
        description="Nucleus sampling probability mass",
    )

    llm_max_tokens: int = Field(
        default=65536,
        ge=256,
        description="Maximum completion tokens per call",
    )

    llm_timeout_seconds: float = Field(
        default=60.0,
        gt=0.0,
        description="Provider-side timeout for a single completion attempt",
    )

    # ==========================================================================
    # Retry Configuration
    # ==========================================================================
    max_attempts: int = Field(
        default=3,
        ge=1,
        le=5,
        description="Total LLM attempts per generation or grading call",
    )

    backoff_seconds: tuple[float, ...] = Field(
        default=(1.0, 2.0, 4.0),
        min_length=1,
        description="Wait before the next attempt, indexed by the failed attempt",
    )

    # ==========================================================================
    # Exam Configuration
    # ==========================================================================
    default_question_count: int = Field(
        default=7,
        ge=5,
        le=10,
        description="Number of questions requested when generating an exam",
    )

    grading_concurrency: int = Field(
        default=1,
        ge=1,
        le=10,
        description="Questions graded in parallel within one exam",
    )

    prompt_version: str = Field(
        default="v1.0",
        description="Prompt template version reported with metrics",
    )

    # ==========================================================================
    # Logging Configuration
    # ==========================================================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging verbosity level",
    )

    @field_validator("llm_base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Ensure base URL doesn't have trailing slash."""
        return v.rstrip("/")

    @field_validator("backoff_seconds")
    @classmethod
    def validate_backoff(cls, v: tuple[float, ...]) -> tuple[float, ...]:
        """Backoff waits must not be negative."""
        if any(delay < 0 for delay in v):
            raise ValueError("backoff_seconds must not contain negative values")
        return v

    @property
    def api_key_pool(self) -> tuple[str, ...]:
        """Trimmed, non-empty API keys in configuration order."""
        return tuple(k.strip() for k in self.llm_api_keys.split(",") if k.strip())


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses LRU cache to ensure settings are only loaded once.
    """
    return Settings()
