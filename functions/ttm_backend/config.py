"""
Configuration and settings for the platform backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")
    environment: str = Field(default="development")

    # Database (Postgres expected)
    database_url: Optional[str] = Field(default=None)

    # S3-compatible storage buckets (herb images, review media, certificates)
    storage_endpoint: Optional[str] = Field(default=None)
    storage_region: Optional[str] = Field(default=None)
    storage_bucket: Optional[str] = Field(default=None)
    aws_access_key_id: Optional[str] = Field(default=None)
    aws_secret_access_key: Optional[str] = Field(default=None)

    # Development toggles
    use_in_memory_backends: bool = Field(default=False)

    # Queue (Redis) for notification jobs
    redis_url: Optional[str] = Field(default=None)
    redis_queue_key: str = Field(default="ttm:notifications")

    # LLM / Gemini for the support assistant
    gemini_api_key: Optional[str] = Field(default=None)
    chat_model: str = Field(default="gemini-2.5-flash")

    # Email (Resend) and LINE messaging
    resend_api_key: Optional[str] = Field(default=None)
    email_from: str = Field(default="Xian Herbs <noreply@xcherbs.com>")
    admin_email: str = Field(default="support@xianherbs.com")
    line_channel_access_token: Optional[str] = Field(default=None)

    # Payments / checkout
    promptpay_id: Optional[str] = Field(default=None)
    checkout_link_ttl_hours: int = Field(default=72)
    trusted_link_domains: list[str] = Field(
        default=["lovable.app", "lovable.dev", "xcherbs.com"]
    )
    default_commission_rate: float = Field(default=0.10)

    # Patient connection links (account signup and LINE)
    app_base_url: str = Field(default="https://xcherbs.com")
    account_signup_link_ttl_hours: int = Field(default=168)
    line_connect_link_ttl_hours: int = Field(default=24)

    # Medication reminders run on clinic-local wall-clock time
    clinic_timezone: str = Field(default="Asia/Bangkok")
    reminder_window_minutes: int = Field(default=5)

    # Contact form rate limiting
    contact_rate_limit_window_seconds: int = Field(default=3600)
    contact_rate_limit_max: int = Field(default=3)

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
