"""
Configuration Management for Willow

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Every tunable of the ranking scheme and of the storage backends is
declared and validated in one place.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RankingSettings(BaseSettings):
    """Rank spacing and precision."""

    model_config = SettingsConfigDict(
        env_prefix="WILLOW_RANK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    gap: float = Field(
        default=1000.0,
        gt=0,
        description="Spacing used when appending to either end of a lane"
    )
    epsilon: float = Field(
        default=1e-6,
        gt=0,
        description="Neighbouring ranks closer than 2 * epsilon trigger compaction"
    )

    @field_validator('gap')
    @classmethod
    def validate_gap(cls, v: float) -> float:
        """Gap must be representable with room for many halvings."""
        if v < 1e-3:
            raise ValueError(f"Rank gap {v} is too small to subdivide")
        return v


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_id: str = Field(
        ...,
        description="ID of the Google Sheets spreadsheet to use"
    )

    # Sheet names within the spreadsheet
    tasks_sheet_name: str = Field(
        default="Tasks",
        description="Name of the sheet for tasks"
    )
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Name of the sheet for audit logs"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="WILLOW_",
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

    storage_backend: str = Field(
        default="memory",
        pattern="^(memory|google_sheets)$",
        description="Where tasks are kept"
    )

    # Task defaults
    default_priority: int = Field(
        default=4,
        ge=1,
        le=4,
        description="Priority given to new tasks (1 = most important)"
    )
    seed_onboarding_tasks: bool = Field(
        default=True,
        description="Give new users a few example tasks"
    )

    # Reordering
    reorder_max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="How many times a reorder is retried after a write conflict"
    )


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

    # Note: These are loaded lazily to allow partial configuration

    @property
    def ranking(self) -> RankingSettings:
        return RankingSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, with an extra
    `<name>_error` entry for each section that failed.
    """
    results = {}

    settings = get_settings()

    for name in ("ranking", "google_sheets", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
