# app/core/config.py
# All application settings loaded from environment variables / .env file
# In production: values come from the secret manager via env injection
# In development: loaded from .env file by pydantic-settings

from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Single source of truth for all Liveroom configuration.
    pydantic-settings automatically reads from environment variables.
    Variable names are case-insensitive.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # App
    app_env: str = "development"
    app_name: str = "Liveroom"
    app_version: str = "1.0.0"
    debug: bool = False
    log_level: str = "INFO"
    auto_migrate_on_startup: bool = False

    # Server
    allowed_origins: str = "http://localhost:3000,http://localhost:8000"

    # Database
    database_url: str = "sqlite:///./liveroom.db"

    # Redis (health check only)
    redis_url: str = "redis://localhost:6379/0"

    # JWT
    jwt_secret_key: str = "change-me"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60

    # Razorpay
    razorpay_key_id: str = ""
    razorpay_key_secret: str = ""
    razorpay_webhook_secret: str = ""

    # SendGrid
    sendgrid_api_key: str = ""
    email_from: str = "noreply@liveroom.app"
    email_from_name: str = "Liveroom"

    # Live sessions
    default_currency: str = "INR"
    attendance_late_grace_minutes: int = 10   # Joins later than this count as "late"
    attendance_write_retries: int = 3         # Attempts before TransientStorageFailure

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def cors_origins(self) -> List[str]:
        """Parse comma-separated ALLOWED_ORIGINS into a list."""
        return [o.strip() for o in self.allowed_origins.split(",") if o.strip()]


@lru_cache
def get_settings() -> Settings:
    """
    Returns a cached Settings instance.
    Use as a FastAPI dependency: settings = Depends(get_settings)
    Or import directly:         from app.core.config import settings
    """
    return Settings()


# Module-level singleton -- import this directly in most places
settings = get_settings()
