"""Service layer exports."""

from .credential_store import LookupStatus, OAuthCredentialStore, StoreLookup
from .google_oauth import GoogleOAuthService

__all__ = [
    "GoogleOAuthService",
    "LookupStatus",
    "OAuthCredentialStore",
    "StoreLookup",
]
