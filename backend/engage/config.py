"""Application Configuration — environment-driven settings via pydantic-settings.

Invariants:
    - All secrets come from environment variables (never hardcoded)
    - get_settings() is cached (lru_cache): single instance per process

Design Decisions:
    - Defaults provided for all non-secret settings: works out-of-the-box with docker-compose
    - Event-system tunables live here so tests and deployments tune them the same way
"""

from functools import lru_cache
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Database
    database_url: str = (
        "postgresql+asyncpg://engage:engage@db:5432/engage"
    )

    @field_validator("database_url", mode="before")
    @classmethod
    def convert_postgres_url(cls, v: str) -> str:
        """Hosted Postgres hands out postgresql:// but asyncpg needs postgresql+asyncpg://."""
        if isinstance(v, str) and v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+asyncpg://", 1)
        return v

    database_pool_size: int = 20
    database_max_overflow: int = 10

    # Storage: "relational" (SQLAlchemy) or "memory" (in-process document store)
    storage_backend: Literal["relational", "memory"] = "relational"

    # API
    cors_origins: list[str] = ["http://localhost:5173"]

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"

    # Event system
    event_handler_timeout_ms: int = 5000
    event_handler_retries: int = 3
    event_history_size: int = 1000
    dead_letter_max_size: int = 1000
    dead_letter_retry_interval_seconds: float = 30.0
    dead_letter_base_delay_seconds: float = 60.0

    # Feature flags
    event_driven_communication: bool = True
    event_disabled_organizations: list[int] = []

    # Engagement milestones
    viral_reaction_threshold: int = 50
    high_engagement_comment_threshold: int = 25
    high_reach_view_threshold: int = 500


@lru_cache
def get_settings() -> Settings:
    return Settings()
