"""Configuration package."""

from willow.config.settings import (
    AppSettings,
    GoogleSheetsSettings,
    RankingSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "GoogleSheetsSettings",
    "RankingSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
