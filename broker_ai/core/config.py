"""
Core configuration module for the Broker AI orchestrator.

This module provides centralized configuration management using Pydantic
Settings. All configuration is loaded from environment variables with the
BROKER_AI_ prefix, e.g. BROKER_AI_RETRY_MAX_ATTEMPTS=5.

Reference:
- GUIDELINES: Sinha pp. 193-195 - Pydantic BaseSettings pattern
- Release It! (Nygard): Timeouts, circuit breakers
"""

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Defaults reproduce the production tuning of the assistant: gpt-4o as
    primary, Claude 3.5 Sonnet as fallback, three attempts with 1s/10s
    backoff bounds and a breaker that opens after five failures.
    """

    # =========================================================================
    # Service Configuration
    # =========================================================================
    service_name: str = Field(
        default="broker-ai",
        description="Name of the service for logging and identification",
    )
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )
    log_level: str = Field(
        default="INFO",
        description="Structured log level (DEBUG, INFO, WARNING, ERROR)",
    )

    # =========================================================================
    # Provider API Keys
    # SecretStr masks values in logs/repr, use .get_secret_value() to access
    # =========================================================================
    openai_api_key: SecretStr = Field(
        default=SecretStr(""),
        description="OpenAI API key for the primary and vision models",
    )
    anthropic_api_key: SecretStr = Field(
        default=SecretStr(""),
        description="Anthropic API key for the fallback model",
    )

    # =========================================================================
    # Models
    # =========================================================================
    primary_model: str = Field(default="gpt-4o", description="Primary chat model")
    fallback_model: str = Field(
        default="claude-3-5-sonnet-20241022",
        description="Fallback chat model (different vendor than primary)",
    )
    embedding_model: str = Field(
        default="text-embedding-3-small",
        description="Embedding model used by embed()",
    )
    vision_model: str = Field(
        default="gpt-4o",
        description="Vision-capable model used for document analysis",
    )
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(default=1000, ge=1, le=16384)

    # =========================================================================
    # Per-call Time Ceilings
    # =========================================================================
    chat_timeout_seconds: float = Field(default=30.0, gt=0.0, le=600.0)
    fallback_timeout_seconds: float = Field(default=30.0, gt=0.0, le=600.0)
    embedding_timeout_seconds: float = Field(default=10.0, gt=0.0, le=600.0)
    document_timeout_seconds: float = Field(default=120.0, gt=0.0, le=600.0)

    # =========================================================================
    # Retry Policy
    # =========================================================================
    retry_max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Total attempts per provider call, including the first",
    )
    retry_base_delay_seconds: float = Field(default=1.0, ge=0.0, le=60.0)
    retry_max_delay_seconds: float = Field(default=10.0, ge=0.0, le=300.0)

    # =========================================================================
    # Circuit Breaker Configuration
    # =========================================================================
    circuit_breaker_failure_threshold: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Number of failures before the circuit opens",
    )
    circuit_breaker_reset_timeout_seconds: float = Field(
        default=60.0,
        ge=1.0,
        le=600.0,
        description="Seconds to wait before a half-open trial call",
    )

    # =========================================================================
    # Knowledge Base
    # =========================================================================
    knowledge_base_url: Optional[str] = Field(
        default=None,
        description="Base URL of the knowledge search service; unset disables retrieval",
    )
    knowledge_base_timeout_seconds: float = Field(default=5.0, gt=0.0, le=60.0)
    knowledge_top_k: int = Field(default=3, ge=1, le=20)
    knowledge_excerpt_chars: int = Field(default=300, ge=20, le=4000)

    # =========================================================================
    # Degraded Mode and Monitoring
    # =========================================================================
    escalation_contact: str = Field(
        default="(949) 755-0720",
        description="Human contact quoted in the degraded reply",
    )
    redis_url: Optional[str] = Field(
        default=None,
        description="Redis URL for usage aggregation; unset disables the Redis sink",
    )
    prometheus_enabled: bool = Field(default=True)

    model_config = {
        "env_prefix": "BROKER_AI_",
        "case_sensitive": False,
        "extra": "ignore",
    }

    # =========================================================================
    # Field Validators
    # =========================================================================
    @field_validator("redis_url")
    @classmethod
    def validate_redis_url(cls, v: Optional[str]) -> Optional[str]:
        """Validate Redis URL format."""
        if v is not None and not v.startswith(("redis://", "rediss://")):
            raise ValueError("Redis URL must start with redis:// or rediss://")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize and validate the log level."""
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level

    @field_validator("retry_max_delay_seconds")
    @classmethod
    def validate_max_delay(cls, v: float, info) -> float:
        """Cap must not be below the base delay."""
        base = info.data.get("retry_base_delay_seconds")
        if base is not None and v < base:
            raise ValueError("retry_max_delay_seconds must be >= retry_base_delay_seconds")
        return v


# =============================================================================
# Settings Singleton
# =============================================================================


@lru_cache
def get_settings() -> Settings:
    """
    Get the application settings singleton.

    Returns:
        Settings: The application settings instance.
    """
    return Settings()
