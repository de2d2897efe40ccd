"""
Google OAuth credential lifecycle.

Issues CSRF state, exchanges authorization codes, keeps access tokens fresh
and revokes credentials. Storage is delegated to ``OAuthCredentialStore`` and
provider calls to ``GoogleOAuthClient``.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import time
import weakref
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

import httpx
from google.oauth2.credentials import Credentials

from app.clients.google_auth import GoogleOAuthClient, OAuthClientConfig
from app.core.config import GoogleSettings, OAuthSettings
from app.core.errors import (
    ConfigurationError,
    IncompleteIdentityError,
    NotAuthenticatedError,
    OAuthError,
    TokenExchangeError,
    TokenExpiredError,
    TokenRefreshError,
)
from app.models.oauth import OAuthCredentials, RefreshedCredentials
from app.services.credential_store import OAuthCredentialStore

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class GoogleOAuthService:
    """Manages the OAuth authorization flow and stored tokens for each user."""

    def __init__(
        self,
        store: OAuthCredentialStore,
        google_settings: GoogleSettings,
        oauth_settings: OAuthSettings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        if oauth_settings.token_buffer_seconds <= 0:
            raise ValueError("Token refresh buffer must be strictly positive.")
        self._store = store
        self._google = google_settings
        self._oauth_settings = oauth_settings
        self._transport = transport
        self._clock = clock
        self._buffer_ms = oauth_settings.token_buffer_seconds * 1000
        self._client: Optional[GoogleOAuthClient] = None
        self._user_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    @property
    def initialized(self) -> bool:
        return self._client is not None

    def initialize(self) -> GoogleOAuthClient:
        """Load the client registration; repeated calls after success are no-ops."""
        if self._client is None:
            config = OAuthClientConfig.from_settings(self._google, self._oauth_settings)
            self._client = GoogleOAuthClient(config, transport=self._transport)
        return self._client

    def _oauth_client(self) -> GoogleOAuthClient:
        return self.initialize()

    def _user_lock(self, user_id: str) -> asyncio.Lock:
        """Per-user lock serializing refresh and revoke; dropped once no caller holds it."""
        lock = self._user_locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._user_locks[user_id] = lock
        return lock

    # Authorization flow

    @staticmethod
    def generate_state() -> str:
        return secrets.token_urlsafe(32)

    def save_state(self, state: str, user_id: str) -> None:
        self._store.save_state(state, user_id)

    def get_authorization_url(self, user_id: str) -> str:
        """Persist a fresh state for ``user_id`` and return the consent URL."""
        client = self._oauth_client()
        state = self.generate_state()
        self.save_state(state, user_id)
        return client.build_authorization_url(state)

    def validate_state(self, state: str) -> Optional[str]:
        """Return the user bound to ``state``, or ``None`` if it is unknown, expired or unreadable."""
        try:
            return self._store.validate_state(state)
        except Exception as exc:
            logger.warning("OAuth state validation failed: %s", exc)
            return None

    async def exchange_code_for_tokens(self, code: str) -> OAuthCredentials:
        """
        Exchange an authorization code for a complete credential record.

        The record is returned, not persisted; call ``save_credentials`` with it.
        """
        client = self._oauth_client()
        requested_at = self._clock()
        token_payload = await client.exchange_authorization_code(code)
        access_token = token_payload["access_token"]

        user_info = await self.get_user_info_from_token(access_token)
        email = user_info.get("email")
        if not email:
            raise IncompleteIdentityError("No email address returned by Google.")

        try:
            expires_in_ms = int(token_payload.get("expires_in", 0)) * 1000
        except (TypeError, ValueError) as exc:
            raise TokenExchangeError("Malformed token payload returned from Google.") from exc

        return OAuthCredentials(
            access_token=access_token,
            refresh_token=token_payload.get("refresh_token"),
            token_type=token_payload.get("token_type"),
            expiry_date=requested_at + expires_in_ms,
            scope=token_payload.get("scope"),
            email=email,
        )

    async def get_user_info_from_token(self, access_token: str) -> Dict[str, Any]:
        return await self._oauth_client().fetch_user_info(access_token)

    async def get_user_info(self, user_id: str) -> Dict[str, Any]:
        access_token = await self.get_valid_access_token(user_id)
        user_info = await self.get_user_info_from_token(access_token)
        if not user_info.get("email"):
            raise IncompleteIdentityError("Google user info is missing an email address.")
        return user_info

    # Stored credentials

    def save_credentials(self, user_id: str, credentials: OAuthCredentials) -> None:
        self._store.save_credentials(user_id, credentials)

    def get_credentials(self, user_id: str) -> Optional[OAuthCredentials]:
        return self._store.get_credentials(user_id)

    def delete_credentials(self, user_id: str) -> None:
        self._store.delete_credentials(user_id)

    def is_authenticated(self, user_id: str) -> bool:
        return self._store.has_credentials(user_id)

    def _needs_refresh(self, credentials: OAuthCredentials) -> bool:
        return self._clock() + self._buffer_ms >= credentials.expiry_date

    async def get_valid_access_token(self, user_id: str) -> str:
        """Return a usable access token, refreshing it when it is about to expire."""
        credentials = self.get_credentials(user_id)
        if credentials is None:
            raise NotAuthenticatedError(f"User {user_id} is not authenticated with Google.")
        if not self._needs_refresh(credentials):
            return credentials.access_token

        async with self._user_lock(user_id):
            # Another caller may have refreshed or revoked while this one waited.
            credentials = self.get_credentials(user_id)
            if credentials is None:
                raise NotAuthenticatedError(
                    f"User {user_id} is not authenticated with Google."
                )
            if not self._needs_refresh(credentials):
                return credentials.access_token

            if not credentials.refresh_token:
                raise TokenExpiredError(
                    "Access token expired and no refresh token is stored; re-authorize."
                )
            logger.info("Refreshing Google access token for user %s", user_id)
            try:
                refreshed = await self.refresh_access_token(credentials.refresh_token)
            except ConfigurationError:
                raise
            except OAuthError as exc:
                logger.warning("Token refresh failed for user %s: %s", user_id, exc)
                raise TokenExpiredError(
                    "Access token expired and could not be refreshed; re-authorize."
                ) from exc

            updated = credentials.merge(refreshed)
            self.save_credentials(user_id, updated)
            return updated.access_token

    async def refresh_access_token(self, refresh_token: str) -> RefreshedCredentials:
        """Obtain a new access token; only fields the provider returns are set."""
        client = self._oauth_client()
        requested_at = self._clock()
        token_payload = await client.refresh_token(refresh_token)
        try:
            return RefreshedCredentials(
                access_token=token_payload["access_token"],
                expiry_date=requested_at + int(token_payload.get("expires_in", 0)) * 1000,
                token_type=token_payload.get("token_type"),
                scope=token_payload.get("scope"),
                refresh_token=token_payload.get("refresh_token"),
            )
        except (TypeError, ValueError) as exc:
            raise TokenRefreshError("Malformed refresh payload returned from Google.") from exc

    async def get_google_credentials(self, user_id: str) -> Credentials:
        """Build google-auth credentials around a valid access token for ``user_id``."""
        access_token = await self.get_valid_access_token(user_id)
        stored = self.get_credentials(user_id)
        config = self._oauth_client().config
        credentials = Credentials(
            token=access_token,
            refresh_token=stored.refresh_token if stored else None,
            token_uri=config.token_url,
            client_id=config.client_id,
            client_secret=config.client_secret,
            scopes=stored.scope.split() if stored and stored.scope else list(config.scopes),
        )
        if stored is not None:
            credentials.expiry = datetime.fromtimestamp(
                stored.expiry_date / 1000, tz=timezone.utc
            ).replace(tzinfo=None)
        return credentials

    async def revoke_token(self, user_id: str) -> bool:
        """
        Revoke the user's token with Google and delete the local record.

        Returns ``False`` when nothing is stored. Remote failures are logged and
        never prevent the local delete. Runs under the user's lock so an
        in-flight refresh cannot store the record again afterwards.
        """
        async with self._user_lock(user_id):
            credentials = self.get_credentials(user_id)
            if credentials is None:
                return False

            try:
                await self._oauth_client().revoke(credentials.access_token)
            except Exception as exc:
                logger.warning("Remote token revocation failed for user %s: %s", user_id, exc)

            self.delete_credentials(user_id)
            return True


__all__ = ["GoogleOAuthService"]
