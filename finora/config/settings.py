"""
Configuration Management for Finora

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


STORAGE_BACKENDS = ("http", "google_sheets", "memory")


class ApiSettings(BaseSettings):
    """Hosted record store (JSON over HTTP) configuration."""

    model_config = SettingsConfigDict(
        env_prefix="FINORA_API_",
        extra="ignore"
    )

    base_url: str = Field(
        ...,
        description="Base URL of the hosted API, e.g. https://finora.example.com"
    )
    access_token: Optional[str] = Field(
        default=None,
        description="Bearer token of the current session"
    )
    # No timeout by default: a hung request leaves the caller pending.
    request_timeout_seconds: Optional[float] = Field(
        default=None,
        gt=0,
        description="Optional per-request timeout"
    )

    # Hosted identity service (session lookup, password check, user removal)
    identity_base_url: Optional[str] = Field(
        default=None,
        description="Identity service root; defaults to {base_url}/auth/v1"
    )
    identity_api_key: Optional[str] = Field(
        default=None,
        description="Public key sent to the identity service as the apikey header"
    )
    service_role_key: Optional[str] = Field(
        default=None,
        description="Privileged key needed to remove a user"
    )

    @field_validator('base_url', 'identity_base_url')
    @classmethod
    def strip_trailing_slash(cls, v: Optional[str]) -> Optional[str]:
        """Normalise URLs so paths can be appended directly."""
        return v.rstrip("/") if v else v

    @property
    def identity_url(self) -> str:
        return self.identity_base_url or f"{self.base_url}/auth/v1"


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
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
    transactions_sheet_name: str = Field(default="Transactions")
    goals_sheet_name: str = Field(default="Goals")
    budgets_sheet_name: str = Field(default="Budgets")
    accounts_sheet_name: str = Field(default="Accounts")
    categories_sheet_name: str = Field(default="Categories")
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

    def sheet_name_for(self, collection: str) -> str:
        """Worksheet name holding the given record collection."""
        return getattr(self, f"{collection}_sheet_name")


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="FINORA_",
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
        default="http",
        description="Record store backend: http, google_sheets or memory"
    )

    # Categories are free-form; strict mode rejects labels outside the suggested set
    strict_categories: bool = Field(
        default=False,
        description="Reject categories outside the suggested set"
    )

    recent_transactions_limit: int = Field(
        default=5,
        ge=1,
        le=100,
        description="How many transactions the dashboard lists as recent"
    )

    # Local persistence
    snapshot_path: Optional[str] = Field(
        default=None,
        description="If set, the client state is persisted to this JSON file"
    )
    preferences_path: str = Field(
        default=".finora/preferences.json",
        description="Where display preferences are stored"
    )
    default_currency_symbol: str = Field(
        default="₦",
        max_length=5,
        description="Currency symbol used when no preference is saved"
    )

    @field_validator('storage_backend')
    @classmethod
    def validate_storage_backend(cls, v: str) -> str:
        """Only known backends are accepted."""
        v = v.strip().lower()
        if v not in STORAGE_BACKENDS:
            raise ValueError(
                f"Unsupported storage backend: {v}. Allowed: {', '.join(STORAGE_BACKENDS)}"
            )
        return v


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
    def api(self) -> ApiSettings:
        return ApiSettings()

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

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


# Settings each storage backend needs besides AppSettings
BACKEND_REQUIREMENTS: dict[str, tuple[str, ...]] = {
    "http": ("api",),
    "google_sheets": ("api", "google_sheets"),
    "memory": (),
}


def validate_all_settings(backend: Optional[str] = None) -> dict:
    """
    Validate all settings are properly configured.

    Args:
        backend: Storage backend to check for. Read from AppSettings if None.

    Returns:
        {setting_name: is_valid} for every settings group, "{name}_error"
        for each invalid one, and "ready": whether the app settings and
        every group the backend needs are valid. Groups the backend does
        not need are reported but do not affect "ready".
    """
    results: dict = {}

    settings = get_settings()

    for name in ("app", "api", "google_sheets"):
        try:
            loaded = getattr(settings, name)
            results[name] = True
            if name == "app" and backend is None:
                backend = loaded.storage_backend
        except ValidationError as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    required = BACKEND_REQUIREMENTS.get(backend or "", ())
    results["ready"] = results["app"] and all(results[name] for name in required)

    return results
