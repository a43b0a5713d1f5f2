"""Application configuration."""

import os
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    supabase_url: str
    supabase_service_key: str
    admin_token: str
    environment: str = _ENVIRONMENT
    log_level: str = "INFO"
    cache_backend: Literal["memory", "supabase"] = "memory"
    cache_ttl_seconds: int = Field(default=900, gt=0)
    cache_warning_window_seconds: float = Field(default=60.0, ge=0.0)
    quota_bucket_size: int = Field(default=20, gt=0)
    max_quota: int = Field(default=200, gt=0)
    max_offset: int = Field(default=200, ge=0)
    max_batch_size: int = Field(default=100, gt=0)
    batch_concurrency: int = Field(default=5, gt=0)
    tier_timeout_seconds: float = Field(default=2.0, gt=0.0)
    overfetch_multiplier: int = Field(default=3, gt=0)
    min_fetch: int = Field(default=20, gt=0)
    max_fetch: int = Field(default=400, gt=0)
    consumer_policy_path: str | None = None
    enterprise_policy_path: str | None = None

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )
