"""Configuration package."""

from finora.config.settings import (
    STORAGE_BACKENDS,
    ApiSettings,
    AppSettings,
    GoogleSheetsSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "STORAGE_BACKENDS",
    "ApiSettings",
    "AppSettings",
    "GoogleSheetsSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
