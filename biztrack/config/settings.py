"""
Configuration Management for BizTrack

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class FirebaseSettings(BaseSettings):
    """Firebase project configuration (Firestore + Auth)."""

    model_config = SettingsConfigDict(
        env_prefix="FIREBASE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    project_id: str = Field(
        ...,
        description="Firebase / Google Cloud project ID"
    )
    web_api_key: str = Field(
        ...,
        description="Web API key used by the Auth REST endpoints"
    )
    credentials_path: Optional[str] = Field(
        default=None,
        description="Path to a service account JSON for Firestore access"
    )
    auth_base_url: str = Field(
        default="https://identitytoolkit.googleapis.com/v1",
        description="Base URL of the identity toolkit REST API"
    )
    request_timeout_seconds: float = Field(
        default=20.0,
        gt=0,
        le=120,
        description="Timeout for Auth REST calls"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: Optional[str]) -> Optional[str]:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if v and not Path(v).exists():
            import warnings
            warnings.warn(
                f"Firebase credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v


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

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Minimum level for structured logs"
    )

    # Backends
    storage_backend: str = Field(
        default="firestore",
        pattern="^(firestore|memory)$",
        description="Document store implementation to use"
    )
    persist_audit_events: bool = Field(
        default=True,
        description="Also write audit events to the document store"
    )

    # Presentation
    currency_code: str = Field(
        default="USD",
        min_length=3,
        max_length=3,
        description="ISO currency code used for display"
    )
    currency_symbol: str = Field(
        default="$",
        description="Symbol prefixed to formatted amounts"
    )

    # Dashboard
    dashboard_appointment_window: int = Field(
        default=5,
        ge=1,
        le=50,
        description="How many appointments (by start time) the dashboard fetches"
    )
    upcoming_appointment_count: int = Field(
        default=3,
        ge=1,
        le=20,
        description="How many upcoming appointments the dashboard shows"
    )

    # Profile
    max_photo_size_mb: int = Field(
        default=2,
        ge=1,
        le=10,
        description="Maximum profile photo size in MB"
    )

    # Navigation
    sign_in_route: str = Field(
        default="/login",
        description="Where unauthenticated viewers are sent"
    )
    home_route: str = Field(
        default="/dashboard",
        description="Where authenticated viewers land"
    )
    public_url: str = Field(
        default="http://localhost:8501",
        description="Address the federated provider redirects back to"
    )

    @property
    def max_photo_size_bytes(self) -> int:
        """Get max photo size in bytes."""
        return self.max_photo_size_mb * 1024 * 1024


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
    def firebase(self) -> FirebaseSettings:
        return FirebaseSettings()

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


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    try:
        _ = settings.firebase
        results["firebase"] = True
    except Exception as e:
        results["firebase"] = False
        results["firebase_error"] = str(e)

    try:
        _ = settings.app
        results["app"] = True
    except Exception as e:
        results["app"] = False
        results["app_error"] = str(e)

    return results
