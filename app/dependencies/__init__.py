"""Expose dependency helpers for FastAPI routers."""

from .clients import (
    get_credential_store,
    get_google_oauth_service,
    get_record_backend,
)
from .config import SettingsDependency, get_app_settings

__all__ = [
    "SettingsDependency",
    "get_app_settings",
    "get_credential_store",
    "get_google_oauth_service",
    "get_record_backend",
]
