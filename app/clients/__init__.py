"""Expose constructed client wrappers."""

from .dynamodb import DynamoDBClient
from .google_auth import GoogleOAuthClient, OAuthClientConfig
from .sqlite_store import SQLiteStore

__all__ = [
    "DynamoDBClient",
    "GoogleOAuthClient",
    "OAuthClientConfig",
    "SQLiteStore",
]
