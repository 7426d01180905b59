"""
Application settings.
Values come from environment variables or a local .env file.
"""
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    APP_NAME: str = "Lodging Allocation API"
    API_VERSION: str = "1.0.0"

    # Security
    SECRET_KEY: str = "change-me-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(default=30, ge=1)

    # Allocation
    CANONICAL_TIMEZONE: str = "UTC"
    CAPACITY_RETRY_ATTEMPTS: int = Field(default=1, ge=0, le=5)

    # Dashboard
    DASHBOARD_LOOKBACK_DAYS: int = Field(default=30, ge=1)

    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"

    @validator("CANONICAL_TIMEZONE")
    def validate_timezone(cls, v):
        try:
            ZoneInfo(v)
        except ZoneInfoNotFoundError:
            raise ValueError(f"Unknown time zone: {v}")
        return v

    @validator("LOG_LEVEL")
    def validate_log_level(cls, v):
        v = v.upper()
        if v not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level: {v}")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
