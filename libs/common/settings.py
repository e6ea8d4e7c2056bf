"""Application settings for the athlete support agent."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ModelConfig(BaseModel):
    """Per-role chat model parameters."""

    model: str
    temperature: float = Field(default=0.0, ge=0.0, le=2.0)
    max_tokens: int = Field(default=1024, ge=1)


class BreakerConfig(BaseModel):
    """Circuit breaker thresholds for a single dependency."""

    failure_threshold: int = Field(default=5, ge=1)
    reset_timeout_s: float = Field(default=30.0, gt=0)
    request_timeout_s: float = Field(default=10.0, gt=0)
    success_threshold: int = Field(default=2, ge=1)


class Settings(BaseSettings):
    """Agent settings, overridable through ``AGENT_*`` environment variables.

    Nested values use ``__`` as delimiter, e.g.
    ``AGENT_SYNTHESIZER_MODEL__TEMPERATURE=0.2``.
    """

    model_config = SettingsConfigDict(
        env_prefix="AGENT_",
        env_nested_delimiter="__",
        env_file=None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Core application settings
    app_env: Literal["development", "test", "staging", "production"] = "development"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    debug: bool = False

    # Per-node models
    classifier_model: ModelConfig = ModelConfig(model="gpt-4o-mini", temperature=0.0, max_tokens=1024)
    planner_model: ModelConfig = ModelConfig(model="gpt-4o-mini", temperature=0.0, max_tokens=1024)
    expander_model: ModelConfig = ModelConfig(model="gpt-4o-mini", temperature=0.3, max_tokens=512)
    synthesizer_model: ModelConfig = ModelConfig(model="gpt-4o", temperature=0.1, max_tokens=4096)
    quality_checker_model: ModelConfig = ModelConfig(model="gpt-4o-mini", temperature=0.0, max_tokens=1024)
    escalation_model: ModelConfig = ModelConfig(model="gpt-4o", temperature=0.2, max_tokens=1024)
    summary_model: ModelConfig = ModelConfig(model="gpt-4o-mini", temperature=0.0, max_tokens=1024)

    # RAG configuration
    retrieval_top_k: int = Field(default=10, ge=1)
    narrow_filter_top_k: int = Field(default=10, ge=1)
    broaden_filter_top_k: int = Field(default=15, ge=1)
    min_narrow_results: int = Field(default=2, ge=0)
    rrf_k: int = Field(default=60, ge=1, le=200)
    rrf_vector_weight: float = Field(default=0.5, ge=0.0, le=1.0)
    confidence_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    expansion_results_per_query: int = Field(default=5, ge=1)

    # Quality loop
    max_quality_retries: int = Field(default=1, ge=0)
    quality_pass_threshold: float = Field(default=0.6, ge=0.0, le=1.0)

    # Deadlines and graph limits
    invoke_deadline_ms: int = Field(default=60_000, ge=1)
    stream_deadline_ms: int = Field(default=120_000, ge=1)
    graph_max_steps: int = Field(default=25, ge=1)

    # Circuit breakers
    llm_breaker: BreakerConfig = BreakerConfig(failure_threshold=3, reset_timeout_s=60.0, request_timeout_s=30.0)
    vector_breaker: BreakerConfig = BreakerConfig(failure_threshold=5, reset_timeout_s=15.0, request_timeout_s=10.0)
    lexical_breaker: BreakerConfig = BreakerConfig(failure_threshold=5, reset_timeout_s=15.0, request_timeout_s=10.0)
    web_search_breaker: BreakerConfig = BreakerConfig(failure_threshold=3, reset_timeout_s=60.0, request_timeout_s=15.0)

    # Retry policy for transient dependency errors
    retry_max_attempts: int = Field(default=3, ge=1)
    retry_initial_wait_s: float = Field(default=0.5, ge=0.0)
    retry_max_wait_s: float = Field(default=8.0, ge=0.0)

    # Feature flags
    feature_quality_checker: bool = True
    feature_retrieval_expansion: bool = True
    feature_query_planner: bool = True
    feature_emotional_support: bool = True
    feature_conversation_memory: bool = True

    # External services
    openai_api_key: Optional[str] = None
    embedding_model: str = "text-embedding-3-small"
    tavily_api_key: Optional[str] = None
    redis_url: Optional[str] = None
    web_search_max_results: int = Field(default=5, ge=1, le=20)

    # Memory and checkpoints
    summary_ttl_seconds: int = Field(default=3600, ge=1)
    checkpoint_ttl_seconds: int = Field(default=86_400, ge=1)

    @field_validator("retry_max_wait_s")
    @classmethod
    def validate_retry_window(cls, v: float, info) -> float:
        """Ensure the retry backoff ceiling is not below the initial wait."""
        initial = info.data.get("retry_initial_wait_s", 0.0)
        if v < initial:
            raise ValueError("retry_max_wait_s must be >= retry_initial_wait_s")
        return v

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
