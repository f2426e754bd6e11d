from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = "Leaveflow"
    app_version: str = "0.1.0"
    debug: bool = False
    environment: Literal["development", "staging", "production"] = "development"
    database_url: str = "postgresql+asyncpg://leaveflow:leaveflow@db:5432/leaveflow"
    # Tables are managed by Alembic migrations; enable only for throwaway databases.
    auto_create_schema: bool = False
    cors_origins: list[str] = ["http://localhost:5173", "http://localhost:8000"]
    log_level: str = "INFO"

    # Optimistic locking: retries after the first attempt, exponential backoff.
    lock_max_retries: int = 3
    lock_backoff_base_ms: int = 100
    lock_backoff_cap_ms: int = 400

    # Step mutations closer together than this are flagged for manual audit.
    conflict_window_seconds: float = 5.0

    # Approval steps left untouched this many working days move to the next authority.
    escalation_working_days: int = 10

    # Outbox events delivered per dispatcher pass.
    outbox_batch_size: int = 100


_settings: Settings | None = None


def get_settings() -> Settings:
    """Return cached settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    global _settings
    _settings = None
