"""
Configuration management for AdherenceEngine
"""

from typing import Literal
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application
    APP_NAME: str = "AdherenceEngine"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENV: str = "development"

    # API
    API_PREFIX: str = "/api/v1"
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Database
    DATABASE_URL: str = "sqlite:///./adherence_engine.db"
    DATABASE_ECHO: bool = False

    # Background jobs (Celery worker + beat)
    CELERY_BROKER_URL: str = "redis://localhost:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/0"
    MATERIALIZE_INTERVAL_SECONDS: int = 60 * 60  # hourly
    MISSED_SWEEP_INTERVAL_SECONDS: int = 15 * 60

    # Reminder defaults
    DEFAULT_MISSED_WINDOW_MINUTES: int = 120
    MIN_MISSED_WINDOW_MINUTES: int = 15
    MAX_MISSED_WINDOW_MINUTES: int = 480
    DEFAULT_DURATION_DAYS: int = 30
    # "inclusive" materializes a dose that falls on the end date itself
    CADENCE_END_POLICY: Literal["inclusive", "exclusive"] = "inclusive"

    # Analytics
    REFILL_THRESHOLD_DAYS: int = 7
    RECENT_LOGS_LIMIT: int = 20
    REMINDER_DETAIL_LOGS_LIMIT: int = 30

    # Notifications
    NOTIFICATION_RATE_LIMIT_PER_HOUR: int = 10

    # CORS
    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()
