"""Schemas related to OAuth flows."""

from __future__ import annotations

from pydantic import BaseModel, Field


class OAuthCallbackPayload(BaseModel):
    """Payload sent to complete the OAuth callback exchange."""

    code: str = Field(..., description="Authorization code returned by Google OAuth.")
    state: str = Field(..., description="Opaque state token issued when starting OAuth.")


class AuthorizationUrlResponse(BaseModel):
    authorization_url: str


class OAuthCallbackResult(BaseModel):
    status: str = "connected"
    user_id: str
    email: str


class AuthStatusResponse(BaseModel):
    user_id: str
    authenticated: bool


class RevokeResponse(BaseModel):
    user_id: str
    revoked: bool


__all__ = [
    "AuthorizationUrlResponse",
    "AuthStatusResponse",
    "OAuthCallbackPayload",
    "OAuthCallbackResult",
    "RevokeResponse",
]
