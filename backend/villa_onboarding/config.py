"""
Application Configuration — Environment & Settings
Centralizes all config from .env with Pydantic Settings for validation.
"""
from pathlib import Path
from functools import lru_cache
from pydantic_settings import BaseSettings

# Resolve paths relative to backend/ directory
BASE_DIR = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # --- Core ---
    APP_NAME: str = "Villa Onboarding Progress API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # --- Database ---
    DATABASE_URL: str = f"sqlite:///{BASE_DIR / 'data' / 'villa_onboarding.db'}"
    PERSISTENCE_TIMEOUT_SECONDS: float = 5.0
    SUBMIT_RETRY_ATTEMPTS: int = 2

    # --- Security ---
    CORS_ORIGINS: list[str] = ["*"]

    # --- Progress scoring ---
    # Share of a step's weight earned while in progress / when skipped
    IN_PROGRESS_DAMPENING: float = 0.7
    SKIP_CREDIT: float = 0.5

    # --- Notifications ---
    SKIP_NOTIFY_THRESHOLD: int = 5

    # --- Logging ---
    LOG_DIR: str = str(BASE_DIR / "logs")
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = str(BASE_DIR / ".env")
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Cached settings singleton."""
    return Settings()
