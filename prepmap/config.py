"""
Engine configuration using pydantic-settings.
Loads from environment variables with .env file support.
"""

from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Backend roadmap/progress service
    api_base_url: str = "http://localhost:3002"
    http_timeout_seconds: float = 10.0

    # Freshness windows per key class (0 = always read-through)
    roles_freshness_seconds: float = 300.0
    content_freshness_seconds: float = 300.0
    progress_freshness_seconds: float = 0.0

    # Retry policy for transient failures
    retry_max_attempts: int = 3
    retry_initial_backoff_seconds: float = 0.5
    retry_backoff_multiplier: float = 2.0

    # Application
    debug: bool = False
    environment: str = "development"
    log_level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR

    # API Settings
    api_v1_prefix: str = "/api/v1"
    project_name: str = "prepmap"
    version: str = "1.0.0"
    cors_origins: List[str] = [
        "http://localhost:3000",
        "http://localhost:3001",
        "http://127.0.0.1:3000",
    ]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
