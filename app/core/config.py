"""
Application configuration models and helpers.

Centralizes settings management so the FastAPI app, the OAuth lifecycle
service and the operational scripts share a consistent configuration surface.
"""

from functools import lru_cache
from pathlib import Path
from typing import Annotated, Literal, Optional

import os

from pydantic import AliasChoices, Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def _load_env_file(path: str = ".env") -> None:
    """Best-effort load key=value pairs from a .env file without extra deps."""
    env_path = Path(path)
    if not env_path.exists():
        return
    for raw_line in env_path.read_text().splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if not sep:
            continue
        key = key.strip()
        if not key or key in os.environ:
            continue
        cleaned = value.strip().strip('"').strip("'")
        os.environ[key] = cleaned


_load_env_file()


_SETTINGS_CONFIG = SettingsConfigDict(populate_by_name=True, extra="ignore")


class GoogleSettings(BaseSettings):
    """Client registration for the Google identity provider.

    Values default to empty strings so that a missing registration is reported
    as a ``ConfigurationError`` when the OAuth service initializes, rather than
    breaking unrelated settings loading.
    """

    model_config = _SETTINGS_CONFIG

    client_id: str = Field(
        "", validation_alias=AliasChoices("OAUTH_CLIENT_ID", "client_id")
    )
    client_secret: str = Field(
        "", validation_alias=AliasChoices("OAUTH_CLIENT_SECRET", "client_secret")
    )
    redirect_uri: str = Field(
        "", validation_alias=AliasChoices("OAUTH_REDIRECT_URI", "redirect_uri")
    )


class OAuthSettings(BaseSettings):
    """OAuth flow configuration."""

    model_config = _SETTINGS_CONFIG

    state_ttl_seconds: int = Field(
        900, validation_alias=AliasChoices("OAUTH_STATE_TTL", "state_ttl_seconds")
    )
    token_buffer_seconds: int = Field(
        300,
        validation_alias=AliasChoices("OAUTH_TOKEN_BUFFER", "token_buffer_seconds"),
        description="Refresh access tokens this many seconds before they expire.",
    )
    single_use_state: bool = Field(
        False,
        validation_alias=AliasChoices("OAUTH_STATE_SINGLE_USE", "single_use_state"),
        description="Delete a state record once it has been validated.",
    )
    http_timeout_seconds: float = Field(
        10.0,
        validation_alias=AliasChoices("OAUTH_HTTP_TIMEOUT", "http_timeout_seconds"),
    )
    scopes: Annotated[tuple[str, ...], NoDecode] = Field(
        (
            "https://www.googleapis.com/auth/userinfo.email",
            "https://www.googleapis.com/auth/userinfo.profile",
            "openid",
        ),
        validation_alias=AliasChoices("OAUTH_SCOPES", "scopes"),
    )
    authorization_url: str = Field(
        "https://accounts.google.com/o/oauth2/v2/auth",
        validation_alias=AliasChoices("OAUTH_AUTHORIZATION_URL", "authorization_url"),
    )
    token_url: str = Field(
        "https://oauth2.googleapis.com/token",
        validation_alias=AliasChoices("OAUTH_TOKEN_URL", "token_url"),
    )
    userinfo_url: str = Field(
        "https://www.googleapis.com/oauth2/v2/userinfo",
        validation_alias=AliasChoices("OAUTH_USERINFO_URL", "userinfo_url"),
    )
    revoke_url: str = Field(
        "https://oauth2.googleapis.com/revoke",
        validation_alias=AliasChoices("OAUTH_REVOKE_URL", "revoke_url"),
    )

    @field_validator("scopes", mode="before")
    @classmethod
    def _split_scopes(
        cls, value: str | tuple[str, ...] | list[str]
    ) -> tuple[str, ...]:
        """Support providing scopes as a comma-separated string."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(value)
        return tuple(scope.strip() for scope in value.split(",") if scope.strip())

    @field_validator("token_buffer_seconds")
    @classmethod
    def _require_positive_buffer(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("Token refresh buffer must be strictly positive.")
        return value


class StorageSettings(BaseSettings):
    """Where credential and state records are persisted."""

    model_config = _SETTINGS_CONFIG

    backend: Literal["sqlite", "dynamodb"] = Field(
        "sqlite",
        validation_alias=AliasChoices("CREDENTIAL_STORE_BACKEND", "backend"),
    )
    sqlite_path: str = Field(
        "data/oauth.db",
        validation_alias=AliasChoices("CREDENTIAL_STORE_PATH", "sqlite_path"),
    )
    dynamodb_table_name: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("DYNAMODB_TABLE_NAME", "dynamodb_table_name"),
    )
    region_name: str = Field(
        "us-east-1", validation_alias=AliasChoices("AWS_REGION", "region_name")
    )


class AppSettings(BaseSettings):
    """Root settings object for the FastAPI application."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        populate_by_name=True,
        extra="ignore",
    )

    environment: str = Field(
        "development", validation_alias=AliasChoices("APP_ENV", "environment")
    )
    log_level: str = Field(
        "INFO", validation_alias=AliasChoices("APP_LOG_LEVEL", "log_level")
    )
    frontend_base_url: Optional[HttpUrl] = Field(
        None,
        validation_alias=AliasChoices("FRONTEND_BASE_URL", "frontend_base_url"),
        description="Optional URL for redirecting users back to the front-end.",
    )
    google: GoogleSettings = Field(default_factory=GoogleSettings)
    oauth: OAuthSettings = Field(default_factory=OAuthSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return AppSettings()


__all__ = [
    "AppSettings",
    "GoogleSettings",
    "OAuthSettings",
    "StorageSettings",
    "get_settings",
]
