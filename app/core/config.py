"""Configuration management for the Adaptive Scoring Engine."""

from functools import lru_cache

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file (only if accessible)
try:
    load_dotenv()
except (PermissionError, OSError):
    # In sandboxed environments, .env might not be accessible
    # Environment variables should be set directly
    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    # Environment
    ADAPTIVE_ENGINE_ENV: str = Field(
        default="dev", description="Environment: dev, staging, prod, test"
    )

    # Rule store configuration
    RULE_STORE_BACKEND: str = Field(
        default="memory", description="Rule store backend: memory or supabase"
    )
    SUPABASE_URL: str | None = Field(default=None, description="Supabase project URL")
    SUPABASE_SERVICE_ROLE_KEY: str | None = Field(
        default=None, description="Supabase service role key"
    )
    RULES_TABLE: str = Field(
        default="adaptive_kv", description="Key/value table holding rules and history"
    )
    RULES_TTL_SECONDS: int = Field(default=60 * 60, description="TTL for the live rule set")
    RULES_HISTORY_TTL_SECONDS: int = Field(
        default=7 * 24 * 60 * 60, description="TTL for the rule-set history"
    )
    RULES_HISTORY_LIMIT: int = Field(
        default=50,
        ge=0,
        description="Max history entries kept (most recent wins); 0 disables history",
    )

    # Classification configuration
    CLASSIFIER_ML_URL: str | None = Field(
        default=None, description="Remote ML classifier endpoint; unset disables ML path"
    )
    CLASSIFIER_ML_API_KEY: str | None = Field(
        default=None, description="Bearer token for the ML classifier"
    )
    CLASSIFIER_ML_TIMEOUT_SECONDS: float = Field(
        default=3.0, description="Timeout imposed around each ML classification call"
    )
    CLASSIFIER_HEURISTIC_CONFIDENCE: float = Field(
        default=0.6, description="Baseline confidence reported by the heuristic classifier"
    )
    CLASSIFIER_BREAKER_FAILURE_THRESHOLD: int = Field(
        default=3, description="Consecutive ML failures before the breaker opens"
    )
    CLASSIFIER_BREAKER_HALF_OPEN_AFTER_MS: int = Field(
        default=30_000, description="Cooldown before the breaker permits a probe"
    )

    # Decision thresholds (0-100 scale)
    DECISION_GO_MIN: int = Field(default=70, description="Minimum post-cap score for GO")
    DECISION_REVIEW_MIN: int = Field(default=40, description="Minimum post-cap score for REVIEW")


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings instance

    Raises:
        ValidationError: If environment variables fail validation
    """
    return Settings()
