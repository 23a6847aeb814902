"""Configuration package."""

from expense_ledger.config.settings import (
    AppSettings,
    GoogleSheetsSettings,
    RecurrenceSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "GoogleSheetsSettings",
    "RecurrenceSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
