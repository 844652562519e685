"""
Configuration and settings for the data-access service.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings, read once at process start."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")
    environment: str = Field(default="production")
    cors_origins: list[str] = Field(default_factory=list)

    # Router feature flags
    primary_backend_enabled: bool = Field(default=True)
    fallback_enabled: bool = Field(default=True)
    attempt_timeout_seconds: float = Field(default=10.0, gt=0)

    # Google
    google_sheets_id: Optional[str] = Field(default=None)
    google_client_id: Optional[str] = Field(default=None)
    apps_script_url: Optional[str] = Field(default=None)
    # Project folders are created under this Drive folder when set
    drive_parent_folder_id: Optional[str] = Field(default=None)

    # Invalidation registry (Redis); in-memory when unset
    redis_url: Optional[str] = Field(default=None)
    redis_key_prefix: str = Field(default="nowandlater:invalidated")

    # Development toggles
    use_in_memory_backends: bool = Field(default=False)

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"


@dataclass(frozen=True)
class RouterConfig:
    """Immutable router flags, built once from Settings and injected."""

    primary_enabled: bool = True
    fallback_enabled: bool = True
    attempt_timeout_seconds: float = 10.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "RouterConfig":
        return cls(
            primary_enabled=settings.primary_backend_enabled,
            fallback_enabled=settings.fallback_enabled,
            attempt_timeout_seconds=settings.attempt_timeout_seconds,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
