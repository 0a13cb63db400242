"""Configuration package for the sync engine."""

from .settings import (
    LocalStoreSettings,
    SupabaseSettings,
    SyncSettings,
    LoggingSettings,
    AppSettings,
    get_settings
)

__all__ = [
    "LocalStoreSettings",
    "SupabaseSettings",
    "SyncSettings",
    "LoggingSettings",
    "AppSettings",
    "get_settings",
]
