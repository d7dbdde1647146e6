"""Service configuration loaded from environment variables and ``.env``."""
from typing import List, Literal, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="allow")

    # Environment
    ENV: Literal["dev", "staging", "prod"] = "dev"

    # Database
    DATABASE_URL: str = "sqlite:///./personalization.db"

    # Bearer tokens accepted by the API (JSON list in the environment)
    TOKENS: List[str] = ["dev-token"]

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: Literal["json", "text"] = "json"

    # Persistence for assignments and usage history
    STORAGE_BACKEND: Literal["sql", "memory"] = "sql"
    PERSISTENCE_ENABLED: bool = True

    # Experiments
    EXPERIMENTS_FILE: Optional[str] = None
    WEIGHT_TOLERANCE: float = 1e-3
    # Set to split visitors with a seeded PRNG instead of the SHA-256 hash
    BUCKETING_SEED: Optional[int] = None

    # Personalization
    USAGE_HISTORY_CAPACITY: int = 50
    DEFAULT_RECOMMENDATION_LIMIT: int = 3

    @field_validator("USAGE_HISTORY_CAPACITY", "DEFAULT_RECOMMENDATION_LIMIT")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    @field_validator("TOKENS")
    @classmethod
    def validate_tokens(cls, v: List[str]) -> List[str]:
        """Reject an empty token list, which would lock every client out."""
        if not v:
            raise ValueError("TOKENS must contain at least one token")
        return v


config_settings = Settings()
