"""Application configuration loaded from environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings for the exam portal service."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    APP_NAME: str = "Exam Portal"

    # Database
    DATABASE_URL: str = "sqlite:///./exam_portal.db"
    DATABASE_ECHO: bool = False

    # IANA zone used as the viewer's local time when resolving schedules
    TIMEZONE: str = "UTC"

    LOG_LEVEL: str = "INFO"

    # Upper bound on AI attempt rows read for the marks report
    AI_ATTEMPT_FETCH_LIMIT: int = 1000


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
