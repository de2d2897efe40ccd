"""
Factory functions to provide shared stores and services as FastAPI dependencies.
"""

from functools import lru_cache

from app.clients import DynamoDBClient, SQLiteStore
from app.core.config import get_settings
from app.services import GoogleOAuthService, OAuthCredentialStore
from app.services.credential_store import RecordBackend


@lru_cache()
def _settings():
    """Internal helper to cache settings for client factories."""
    return get_settings()


@lru_cache()
def get_record_backend() -> RecordBackend:
    """Provide the configured key-value backend."""
    storage = _settings().storage
    if storage.backend == "dynamodb":
        return DynamoDBClient(storage)
    return SQLiteStore(storage.sqlite_path)


@lru_cache()
def get_credential_store() -> OAuthCredentialStore:
    """Provide the shared credential and state store."""
    settings = _settings()
    return OAuthCredentialStore(
        get_record_backend(),
        state_ttl_seconds=settings.oauth.state_ttl_seconds,
        single_use_state=settings.oauth.single_use_state,
    )


@lru_cache()
def get_google_oauth_service() -> GoogleOAuthService:
    """Provide the OAuth lifecycle service; the client registration loads on first use."""
    settings = _settings()
    return GoogleOAuthService(
        store=get_credential_store(),
        google_settings=settings.google,
        oauth_settings=settings.oauth,
    )


__all__ = [
    "get_credential_store",
    "get_google_oauth_service",
    "get_record_backend",
]
