"""Configuration package."""

from family_ledger.config.settings import (
    ApiSettings,
    AppSettings,
    GoogleSheetsSettings,
    Settings,
    StoreSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "ApiSettings",
    "AppSettings",
    "GoogleSheetsSettings",
    "Settings",
    "StoreSettings",
    "get_settings",
    "validate_all_settings",
]
