"""Public schema exports."""

from .auth import (
    AuthorizationUrlResponse,
    AuthStatusResponse,
    OAuthCallbackPayload,
    OAuthCallbackResult,
    RevokeResponse,
)

__all__ = [
    "AuthorizationUrlResponse",
    "AuthStatusResponse",
    "OAuthCallbackPayload",
    "OAuthCallbackResult",
    "RevokeResponse",
]
