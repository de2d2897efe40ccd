"""
Domain models for OAuth credential and state persistence.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class OAuthCredentials(BaseModel):
    """The single credential record stored for a user."""

    model_config = ConfigDict(frozen=True)

    access_token: str = Field(..., min_length=1)
    refresh_token: Optional[str] = None
    token_type: Optional[str] = None
    expiry_date: int = Field(
        ..., description="Epoch milliseconds after which the access token is unusable."
    )
    scope: Optional[str] = None
    email: str = Field(..., min_length=1)

    def merge(self, refreshed: "RefreshedCredentials") -> "OAuthCredentials":
        """Overlay the fields a refresh returned onto this record."""
        updates = refreshed.model_dump(exclude_none=True)
        return self.model_copy(update=updates)


class RefreshedCredentials(BaseModel):
    """Partial credential returned by a refresh grant.

    ``refresh_token`` stays ``None`` unless the provider rotated it, so merging
    never erases the stored refresh token.
    """

    access_token: str
    expiry_date: int
    token_type: Optional[str] = None
    scope: Optional[str] = None
    refresh_token: Optional[str] = None


class PendingState(BaseModel):
    """An in-flight authorization attempt awaiting its callback."""

    state: str
    user_id: str
    timestamp: int = Field(..., description="Creation time in epoch milliseconds.")

    def is_expired(self, *, now_ms: int, ttl_ms: int) -> bool:
        return now_ms - self.timestamp > ttl_ms


__all__ = ["OAuthCredentials", "PendingState", "RefreshedCredentials"]
