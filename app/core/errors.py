"""
Error taxonomy for the OAuth credential lifecycle.
"""


class OAuthError(Exception):
    """Base class for every credential lifecycle failure."""


class ConfigurationError(OAuthError):
    """Raised when the OAuth client registration is missing or invalid."""


class TokenExchangeError(OAuthError):
    """Raised when the token endpoint rejects an authorization code exchange."""


class TokenRefreshError(OAuthError):
    """Raised when the token endpoint rejects a refresh request."""


class IdentityLookupError(OAuthError):
    """Raised when the userinfo endpoint cannot be queried."""


class IncompleteIdentityError(OAuthError):
    """Raised when the userinfo response does not identify the account."""


class NotAuthenticatedError(OAuthError):
    """Raised when no credential is stored for a user."""


class TokenExpiredError(OAuthError):
    """Raised when the access token expired and could not be refreshed."""


class StorageWriteError(OAuthError):
    """Raised when the persistence backend fails to write or delete a record."""


__all__ = [
    "ConfigurationError",
    "IdentityLookupError",
    "IncompleteIdentityError",
    "NotAuthenticatedError",
    "OAuthError",
    "StorageWriteError",
    "TokenExchangeError",
    "TokenExpiredError",
    "TokenRefreshError",
]
