"""
Configuration Management for the Recurring Ledger Scheduler

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.
The trigger secret is read once and injected into the TriggerGate;
nothing reads it from the environment while serving a request.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GoogleSheetsSettings(BaseSettings):
    """Ledger store (Google Sheets) configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    spreadsheet_url: str = Field(
        ...,
        description="URL of the spreadsheet holding rules and ledgers"
    )
    credentials_path: str = Field(
        ...,
        description="Path to the service account credentials JSON (cross-user access)"
    )

    # Sheet names within the spreadsheet
    rules_sheet_name: str = Field(
        default="recurring_transactions",
        description="Name of the sheet for recurring rules"
    )
    income_sheet_name: str = Field(
        default="income",
        description="Name of the income ledger sheet"
    )
    expense_sheet_name: str = Field(
        default="expenses",
        description="Name of the expense ledger sheet"
    )

    @field_validator('spreadsheet_url')
    @classmethod
    def validate_spreadsheet_url(cls, v: str) -> str:
        if not v.startswith("https://"):
            raise ValueError("spreadsheet_url must be an https URL")
        return v

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before the first batch run."
            )
        return v


class TriggerSettings(BaseSettings):
    """Shared secret authorizing the periodic trigger."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    cron_secret: str = Field(
        ...,
        min_length=1,
        description="Secret the trigger must present (env CRON_SECRET)"
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

    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    store_backend: Literal["google_sheets", "memory"] = Field(
        default="google_sheets",
        description="Ledger store used by the batch run"
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

    # Sub-settings are loaded lazily to allow partial configuration

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def trigger(self) -> TriggerSettings:
        return TriggerSettings()

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

    Returns a dict of {setting_name: is_valid}, plus
    {setting_name}_error entries for the sections that failed.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    for name in ("google_sheets", "trigger", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
