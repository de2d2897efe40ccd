"""
Google OAuth utilities.

These helpers issue the provider-facing HTTP calls of the authorization code
flow: code exchange, refresh, identity lookup and revocation.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx

from fastapi import status

from app.core.config import GoogleSettings, OAuthSettings
from app.core.errors import (
    ConfigurationError,
    IdentityLookupError,
    TokenExchangeError,
    TokenRefreshError,
)


@dataclass(frozen=True)
class OAuthClientConfig:
    """Immutable client registration and endpoint set used for provider calls."""

    client_id: str
    client_secret: str
    redirect_uri: str
    scopes: tuple[str, ...]
    authorization_url: str
    token_url: str
    userinfo_url: str
    revoke_url: str
    timeout_seconds: float = 10.0

    @classmethod
    def from_settings(
        cls, google_settings: GoogleSettings, oauth_settings: OAuthSettings
    ) -> "OAuthClientConfig":
        """Build a config, rejecting a missing client registration."""
        missing = [
            name
            for name, value in (
                ("oauth_client_id", google_settings.client_id),
                ("oauth_client_secret", google_settings.client_secret),
                ("oauth_redirect_uri", google_settings.redirect_uri),
            )
            if not value or not value.strip()
        ]
        if missing:
            raise ConfigurationError(
                f"Missing OAuth settings: {', '.join(missing)}."
            )
        return cls(
            client_id=google_settings.client_id,
            client_secret=google_settings.client_secret,
            redirect_uri=google_settings.redirect_uri,
            scopes=tuple(oauth_settings.scopes),
            authorization_url=oauth_settings.authorization_url,
            token_url=oauth_settings.token_url,
            userinfo_url=oauth_settings.userinfo_url,
            revoke_url=oauth_settings.revoke_url,
            timeout_seconds=oauth_settings.http_timeout_seconds,
        )


def _json_body(response: httpx.Response) -> Dict[str, Any]:
    try:
        payload = response.json()
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}


class GoogleOAuthClient:
    """Build Google authorization URLs and call the token, userinfo and revoke endpoints."""

    def __init__(
        self,
        config: OAuthClientConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._config = config
        self._transport = transport

    @property
    def config(self) -> OAuthClientConfig:
        return self._config

    def _http(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self._config.timeout_seconds, transport=self._transport
        )

    def build_authorization_url(self, state: str) -> str:
        """Construct the Google OAuth consent URL."""
        params = {
            "client_id": self._config.client_id,
            "redirect_uri": self._config.redirect_uri,
            "response_type": "code",
            "access_type": "offline",
            "prompt": "consent",
            "scope": " ".join(self._config.scopes),
            "state": state,
        }
        query = urlencode(params)
        return f"{self._config.authorization_url}?{query}"

    async def exchange_authorization_code(self, code: str) -> Dict[str, Any]:
        """Exchange an authorization code and return the raw token payload."""
        payload = {
            "code": code,
            "client_id": self._config.client_id,
            "client_secret": self._config.client_secret,
            "redirect_uri": self._config.redirect_uri,
            "grant_type": "authorization_code",
        }

        try:
            async with self._http() as client:
                response = await client.post(self._config.token_url, data=payload)
        except httpx.HTTPError as exc:
            raise TokenExchangeError(f"Token endpoint unreachable: {exc}") from exc

        if response.status_code != status.HTTP_200_OK:
            raise TokenExchangeError(
                f"Failed to exchange authorization code: HTTP {response.status_code}"
            )

        token_payload = _json_body(response)
        if not token_payload.get("access_token"):
            raise TokenExchangeError("No access token returned from Google.")
        return token_payload

    async def refresh_token(self, refresh_token: str) -> Dict[str, Any]:
        """Refresh the access token using a stored refresh token."""
        payload = {
            "refresh_token": refresh_token,
            "client_id": self._config.client_id,
            "client_secret": self._config.client_secret,
            "grant_type": "refresh_token",
        }

        try:
            async with self._http() as client:
                response = await client.post(self._config.token_url, data=payload)
        except httpx.HTTPError as exc:
            raise TokenRefreshError(f"Token endpoint unreachable: {exc}") from exc

        if response.status_code != status.HTTP_200_OK:
            raise TokenRefreshError(
                f"Failed to refresh token: HTTP {response.status_code}"
            )

        token_payload = _json_body(response)
        if not token_payload.get("access_token"):
            raise TokenRefreshError("Incomplete refresh payload returned from Google.")
        return token_payload

    async def fetch_user_info(self, access_token: str) -> Dict[str, Any]:
        """Return the identity document for the account behind ``access_token``."""
        headers = {"Authorization": f"Bearer {access_token}"}
        try:
            async with self._http() as client:
                response = await client.get(self._config.userinfo_url, headers=headers)
        except httpx.HTTPError as exc:
            raise IdentityLookupError(f"Userinfo endpoint unreachable: {exc}") from exc

        if response.status_code != status.HTTP_200_OK:
            raise IdentityLookupError(
                f"Failed to get user info: HTTP {response.status_code}"
            )
        return _json_body(response)

    async def revoke(self, token: str) -> None:
        """Ask Google to revoke ``token``; raises ``httpx.HTTPError`` on failure."""
        async with self._http() as client:
            response = await client.post(self._config.revoke_url, params={"token": token})
        response.raise_for_status()


__all__ = ["GoogleOAuthClient", "OAuthClientConfig"]
