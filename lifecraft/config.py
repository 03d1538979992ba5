"""
Configuration and settings for the LifeCraft backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the API and the badge worker."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    api_prefix: str = Field(default="/api")
    log_level: str = Field(default="INFO")
    allowed_origins: list[str] = Field(default_factory=list)

    # Database (Postgres expected, any SQLAlchemy URL works)
    database_url: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("DATABASE_URL")
    )

    # Cache + queue (Redis)
    redis_url: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("REDIS_URL")
    )
    badge_queue_name: str = Field(
        default="badge_processing_queue",
        validation_alias=AliasChoices("BADGE_QUEUE_NAME"),
    )

    # Cache lifetimes, in seconds
    recommendation_ttl_seconds: int = 60 * 10
    new_badges_ttl_seconds: int = 60 * 5
    all_badges_ttl_seconds: int = 86400 * 7
    badge_lookup_ttl_seconds: int = 60 * 60
    badge_processing_ttl_seconds: int = 60

    # LLM / Gemini
    gemini_api_key: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("GEMINI_API_KEY")
    )
    gemini_model: str = Field(
        default="gemini-2.0-flash", validation_alias=AliasChoices("GEMINI_MODEL")
    )

    # Auth
    secret_key: str = Field(
        default="change-me-in-production",
        validation_alias=AliasChoices("LIFECRAFT_SECRET_KEY", "SECRET_KEY"),
    )
    jwt_algorithm: str = "HS256"
    jwt_lifetime_seconds: int = 60 * 60 * 24
    reset_token_lifetime_seconds: int = 60 * 30
    password_reset_url: str = Field(default="http://localhost:3000/auth/reset-password")

    # Email (SMTP relay)
    email_enabled: bool = Field(
        default=False, validation_alias=AliasChoices("EMAIL_ENABLED")
    )
    email_smtp_host: str = Field(default="smtp.gmail.com")
    email_smtp_port: int = Field(default=465)
    email_smtp_username: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("GMAIL_USER", "EMAIL_SMTP_USERNAME")
    )
    email_smtp_password: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("GMAIL_APP_PASS", "EMAIL_SMTP_PASSWORD"),
    )
    email_smtp_ssl: bool = True
    email_smtp_starttls: bool = False
    email_from_name: str = "LifeCraft Training"

    # S3-compatible storage for certificate files
    storage_endpoint: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("STORAGE_ENDPOINT")
    )
    storage_region: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("STORAGE_REGION")
    )
    storage_bucket: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("STORAGE_BUCKET")
    )
    aws_access_key_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("AWS_ACCESS_KEY_ID")
    )
    aws_secret_access_key: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("AWS_SECRET_ACCESS_KEY")
    )
    certificate_url_expiry_seconds: int = 3600

    # Development toggles
    use_in_memory_backends: bool = Field(
        default=False,
        validation_alias=AliasChoices("LIFECRAFT_USE_IN_MEMORY_BACKENDS"),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
