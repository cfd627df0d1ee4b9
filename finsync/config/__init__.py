"""Configuration package."""

from finsync.config.settings import (
    AppSettings,
    RemoteSettings,
    Settings,
    StoreSettings,
    SyncSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "RemoteSettings",
    "Settings",
    "StoreSettings",
    "SyncSettings",
    "get_settings",
    "validate_all_settings",
]
