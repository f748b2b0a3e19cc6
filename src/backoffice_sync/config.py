"""Application configuration management."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from shared.constants import (
    HTTP_TIMEOUT_SECONDS,
    PENDING_REGISTRATION_TTL_SECONDS,
    SESSION_MAX_AGE_SECONDS,
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # -------------------------------------------------------------------------
    # Application Settings
    # -------------------------------------------------------------------------
    app_name: str = "back-office-sync"
    app_env: Literal["development", "staging", "production", "test"] = "development"
    debug: bool = False
    log_level: str = "INFO"

    # -------------------------------------------------------------------------
    # API Settings
    # -------------------------------------------------------------------------
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_workers: int = 4
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:3000"])

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: str | list[str]) -> list[str]:
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",")]
        return v

    # -------------------------------------------------------------------------
    # Storefront
    # -------------------------------------------------------------------------
    site_url: str = "http://localhost:8080"

    @field_validator("site_url", "backoffice_api_base_url", "backoffice_frontend_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.strip().rstrip("/")

    # -------------------------------------------------------------------------
    # Back-Office API Integration
    # -------------------------------------------------------------------------
    backoffice_api_base_url: str = ""
    backoffice_api_key: str = ""
    backoffice_frontend_url: str = ""
    backoffice_api_timeout: float = HTTP_TIMEOUT_SECONDS
    sponsor_api_token: str = ""

    @property
    def backoffice_configured(self) -> bool:
        """Whether both the API base URL and key are set."""
        return bool(self.backoffice_api_base_url and self.backoffice_api_key)

    # -------------------------------------------------------------------------
    # Security
    # -------------------------------------------------------------------------
    inbound_api_key: str = ""
    api_key_header: str = "X-API-Key"
    session_cookie_name: str = "bos_session"
    session_max_age_seconds: int = SESSION_MAX_AGE_SECONDS
    session_cookie_secure: bool = True

    # -------------------------------------------------------------------------
    # Sync Log
    # -------------------------------------------------------------------------
    sync_log_path: str = "logs/back-office-sync.log"

    # -------------------------------------------------------------------------
    # Registration
    # -------------------------------------------------------------------------
    pending_registration_ttl_seconds: int = PENDING_REGISTRATION_TTL_SECONDS

    # -------------------------------------------------------------------------
    # PostgreSQL Database
    # -------------------------------------------------------------------------
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "commerce"
    postgres_password: str = ""
    postgres_db: str = "commerce"
    db_pool_size: int = 5
    db_max_overflow: int = 10
    db_pool_recycle: int = 1800
    database_dsn: str = ""

    @property
    def database_url(self) -> str:
        """Construct the async connection URL; `database_dsn` wins when set."""
        if self.database_dsn:
            return self.database_dsn
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def database_url_sync(self) -> str:
        """Construct synchronous PostgreSQL connection URL (for Alembic)."""
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # -------------------------------------------------------------------------
    # Redis
    # -------------------------------------------------------------------------
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: str = ""
    redis_db: int = 0

    @property
    def redis_url(self) -> str:
        """Construct Redis connection URL."""
        if self.redis_password:
            return f"redis://:{self.redis_password}@{self.redis_host}:{self.redis_port}/{self.redis_db}"
        return f"redis://{self.redis_host}:{self.redis_port}/{self.redis_db}"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
