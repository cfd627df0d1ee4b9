"""
Configuration Management for Finance Sync

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StoreSettings(BaseSettings):
    """Local store configuration."""

    model_config = SettingsConfigDict(
        env_prefix="FINSYNC_STORE_",
        extra="ignore"
    )

    data_dir: str = Field(
        default="~/.finsync",
        description="Directory holding the per-user store files"
    )
    file_name: str = Field(
        default="store.json",
        description="Store file name used when no user identity is known"
    )

    @property
    def data_path(self) -> Path:
        """Data directory with the user home expanded."""
        return Path(self.data_dir).expanduser()


class RemoteSettings(BaseSettings):
    """Remote backend configuration."""

    model_config = SettingsConfigDict(
        env_prefix="FINSYNC_REMOTE_",
        extra="ignore"
    )

    base_url: Optional[str] = Field(
        default=None,
        description="Base URL of the REST backend. Unset means in-memory backend."
    )
    api_key: Optional[str] = Field(
        default=None,
        description="API key sent with every request"
    )
    timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        le=120,
        description="Upper bound for any single remote call"
    )
    max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts for transient connection errors"
    )

    @field_validator('base_url')
    @classmethod
    def strip_trailing_slash(cls, v: Optional[str]) -> Optional[str]:
        """Normalize the base URL so paths can be appended directly."""
        if v is None:
            return v
        v = v.strip()
        return v.rstrip("/") or None


class SyncSettings(BaseSettings):
    """Sync engine configuration."""

    model_config = SettingsConfigDict(
        env_prefix="FINSYNC_SYNC_",
        extra="ignore"
    )

    interval_seconds: float = Field(
        default=15 * 60,
        gt=0,
        description="Seconds between periodic sync cycles"
    )
    flush_on_write: bool = Field(
        default=True,
        description="Schedule a background flush after each local write when online"
    )
    failure_notice_threshold: int = Field(
        default=3,
        ge=1,
        description="Consecutive failed drains per entity kind before a notice is shown"
    )


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        description="Minimum log level"
    )

    # Identity provided by the authentication collaborator
    user_id: Optional[str] = Field(
        default=None,
        description="Authenticated user identity scoping stored and synced data"
    )

    @field_validator('log_level')
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def store(self) -> StoreSettings:
        return StoreSettings()

    @property
    def remote(self) -> RemoteSettings:
        return RemoteSettings()

    @property
    def sync(self) -> SyncSettings:
        return SyncSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    for name in ("store", "remote", "sync", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
