"""Configuration package."""

from recurring_ledger.config.settings import (
    AppSettings,
    GoogleSheetsSettings,
    Settings,
    TriggerSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "GoogleSheetsSettings",
    "Settings",
    "TriggerSettings",
    "get_settings",
    "validate_all_settings",
]
