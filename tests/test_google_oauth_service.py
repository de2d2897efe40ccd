from __future__ import annotations

import asyncio
import gc
from pathlib import Path
from urllib.parse import parse_qs, urlparse

import pytest
from pydantic import ValidationError

from _fakes import (
    FakeClock,
    FakeGoogleProvider,
    build_service,
    google_settings,
    oauth_settings,
)
from app.core.errors import (
    ConfigurationError,
    IdentityLookupError,
    IncompleteIdentityError,
    NotAuthenticatedError,
    TokenExchangeError,
    TokenExpiredError,
    TokenRefreshError,
)
from app.models.oauth import OAuthCredentials
from app.services import GoogleOAuthService

MINUTE_MS = 60 * 1000


@pytest.fixture()
def provider() -> FakeGoogleProvider:
    return FakeGoogleProvider()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def service(tmp_path: Path, provider: FakeGoogleProvider, clock: FakeClock) -> GoogleOAuthService:
    return build_service(str(tmp_path / "oauth.db"), provider, clock)


def _stored(clock: FakeClock, *, expires_in_ms: int, **overrides) -> OAuthCredentials:
    values = {
        "access_token": "AT-old",
        "refresh_token": "RT-old",
        "token_type": "Bearer",
        "expiry_date": clock() + expires_in_ms,
        "scope": "openid email",
        "email": "a@b.com",
    }
    values.update(overrides)
    return OAuthCredentials(**values)


def _query(url: str) -> dict[str, str]:
    return {key: values[0] for key, values in parse_qs(urlparse(url).query).items()}


def test_initialize_rejects_missing_settings(
    tmp_path: Path, provider: FakeGoogleProvider, clock: FakeClock
) -> None:
    service = build_service(str(tmp_path / "oauth.db"), provider, clock, client_secret="")

    with pytest.raises(ConfigurationError, match="oauth_client_secret"):
        service.initialize()
    assert service.initialized is False


def test_initialize_is_idempotent(service: GoogleOAuthService) -> None:
    client = service.initialize()
    assert service.initialize() is client

    assert service.initialized is True
    assert service._client is client


def test_token_buffer_must_be_positive() -> None:
    with pytest.raises(ValidationError):
        oauth_settings(token_buffer_seconds=0)


def test_generated_states_are_unique() -> None:
    states = {GoogleOAuthService.generate_state() for _ in range(200)}

    assert len(states) == 200
    assert all(len(state) >= 32 for state in states)


def test_authorization_url_carries_flow_parameters(service: GoogleOAuthService) -> None:
    url = service.get_authorization_url("u1")

    assert url.startswith("https://oauth.test/auth?")
    params = _query(url)
    assert params["client_id"] == "client"
    assert params["redirect_uri"] == "https://example.com/callback"
    assert params["response_type"] == "code"
    assert params["access_type"] == "offline"
    assert params["prompt"] == "consent"
    assert params["scope"] == "openid email"
    assert service.validate_state(params["state"]) == "u1"


def test_authorization_url_requires_configuration(
    tmp_path: Path, provider: FakeGoogleProvider, clock: FakeClock
) -> None:
    service = build_service(str(tmp_path / "oauth.db"), provider, clock, client_id="")

    with pytest.raises(ConfigurationError):
        service.get_authorization_url("u1")


def test_validate_state_swallows_store_errors(
    provider: FakeGoogleProvider, clock: FakeClock
) -> None:
    class ExplodingStore:
        def validate_state(self, state: str) -> str:
            raise RuntimeError("backend down")

    service = GoogleOAuthService(
        ExplodingStore(),  # type: ignore[arg-type]
        google_settings(),
        oauth_settings(),
        transport=provider.transport,
        clock=clock,
    )

    assert service.validate_state("s") is None


@pytest.mark.asyncio
async def test_end_to_end_authorization_flow(
    service: GoogleOAuthService, provider: FakeGoogleProvider, clock: FakeClock
) -> None:
    state = _query(service.get_authorization_url("u1"))["state"]
    assert service.validate_state(state) == "u1"

    record = await service.exchange_code_for_tokens("code123")

    assert record.access_token == "AT1"
    assert record.refresh_token == "RT1"
    assert record.email == "a@b.com"
    assert record.expiry_date == clock() + 3600 * 1000
    assert service.get_credentials("u1") is None

    service.save_credentials("u1", record)
    assert service.is_authenticated("u1") is True

    token = await service.get_valid_access_token("u1")

    assert token == "AT1"
    assert [form["grant_type"] for form in provider.token_forms()] == ["authorization_code"]


@pytest.mark.asyncio
async def test_exchange_posts_form_encoded_code(
    service: GoogleOAuthService, provider: FakeGoogleProvider
) -> None:
    await service.exchange_code_for_tokens("code123")

    request = provider.calls("/token")[0]
    assert request.headers["content-type"] == "application/x-www-form-urlencoded"
    assert provider.token_forms()[0] == {
        "code": "code123",
        "client_id": "client",
        "client_secret": "secret",
        "redirect_uri": "https://example.com/callback",
        "grant_type": "authorization_code",
    }
    userinfo = provider.calls("/userinfo")[0]
    assert userinfo.headers["authorization"] == "Bearer AT1"


@pytest.mark.asyncio
async def test_exchange_requires_email(
    service: GoogleOAuthService, provider: FakeGoogleProvider
) -> None:
    provider.userinfo_body = {"name": "No Email"}

    with pytest.raises(IncompleteIdentityError):
        await service.exchange_code_for_tokens("code123")


@pytest.mark.asyncio
async def test_exchange_rejects_provider_error(
    service: GoogleOAuthService, provider: FakeGoogleProvider
) -> None:
    provider.token_status = 400
    provider.token_body = {"error": "invalid_grant"}

    with pytest.raises(TokenExchangeError):
        await service.exchange_code_for_tokens("bad-code")
    assert provider.calls("/userinfo") == []


@pytest.mark.asyncio
async def test_exchange_rejects_missing_access_token(
    service: GoogleOAuthService, provider: FakeGoogleProvider
) -> None:
    provider.token_body = {"expires_in": 3600}

    with pytest.raises(TokenExchangeError):
        await service.exchange_code_for_tokens("code123")


@pytest.mark.asyncio
async def test_exchange_surfaces_identity_lookup_failure(
    service: GoogleOAuthService, provider: FakeGoogleProvider
) -> None:
    provider.userinfo_status = 401

    with pytest.raises(IdentityLookupError):
        await service.exchange_code_for_tokens("code123")


@pytest.mark.asyncio
async def test_missing_credentials_raise_not_authenticated(service: GoogleOAuthService) -> None:
    with pytest.raises(NotAuthenticatedError):
        await service.get_valid_access_token("nobody")


@pytest.mark.asyncio
async def test_token_inside_buffer_is_refreshed(
    service: GoogleOAuthService, provider: FakeGoogleProvider, clock: FakeClock
) -> None:
    service.save_credentials("u1", _stored(clock, expires_in_ms=4 * MINUTE_MS))

    token = await service.get_valid_access_token("u1")

    assert token == "AT2"
    assert provider.token_forms() == [
        {
            "refresh_token": "RT-old",
            "client_id": "client",
            "client_secret": "secret",
            "grant_type": "refresh_token",
        }
    ]
    stored = service.get_credentials("u1")
    assert stored.access_token == "AT2"
    assert stored.refresh_token == "RT-old"
    assert stored.email == "a@b.com"
    assert stored.expiry_date == clock() + 3600 * 1000


@pytest.mark.asyncio
async def test_token_outside_buffer_is_returned_unchanged(
    service: GoogleOAuthService, provider: FakeGoogleProvider, clock: FakeClock
) -> None:
    service.save_credentials("u1", _stored(clock, expires_in_ms=10 * MINUTE_MS))

    assert await service.get_valid_access_token("u1") == "AT-old"
    assert provider.requests == []


@pytest.mark.asyncio
async def test_token_exactly_at_buffer_is_refreshed(
    service: GoogleOAuthService, provider: FakeGoogleProvider, clock: FakeClock
) -> None:
    service.save_credentials("u1", _stored(clock, expires_in_ms=5 * MINUTE_MS))

    assert await service.get_valid_access_token("u1") == "AT2"


@pytest.mark.asyncio
async def test_rotated_refresh_token_is_stored(
    service: GoogleOAuthService, provider: FakeGoogleProvider, clock: FakeClock
) -> None:
    provider.refresh_body = {**provider.refresh_body, "refresh_token": "RT-new"}
    service.save_credentials("u1", _stored(clock, expires_in_ms=-MINUTE_MS))

    await service.get_valid_access_token("u1")

    assert service.get_credentials("u1").refresh_token == "RT-new"


@pytest.mark.asyncio
async def test_failed_refresh_leaves_record_untouched(
    service: GoogleOAuthService, provider: FakeGoogleProvider, clock: FakeClock
) -> None:
    provider.refresh_status = 400
    original = _stored(clock, expires_in_ms=-MINUTE_MS)
    service.save_credentials("u1", original)

    with pytest.raises(TokenExpiredError):
        await service.get_valid_access_token("u1")

    assert service.get_credentials("u1") == original


@pytest.mark.asyncio
async def test_expired_token_without_refresh_token(
    service: GoogleOAuthService, provider: FakeGoogleProvider, clock: FakeClock
) -> None:
    service.save_credentials(
        "u1", _stored(clock, expires_in_ms=-MINUTE_MS, refresh_token=None)
    )

    with pytest.raises(TokenExpiredError):
        await service.get_valid_access_token("u1")
    assert provider.requests == []
    assert service.get_credentials("u1") is not None


@pytest.mark.asyncio
async def test_refresh_access_token_returns_partial_record(
    service: GoogleOAuthService, clock: FakeClock
) -> None:
    refreshed = await service.refresh_access_token("RT-old")

    assert refreshed.access_token == "AT2"
    assert refreshed.refresh_token is None
    assert refreshed.expiry_date == clock() + 3600 * 1000


@pytest.mark.asyncio
async def test_refresh_access_token_rejects_provider_error(
    service: GoogleOAuthService, provider: FakeGoogleProvider
) -> None:
    provider.refresh_status = 401

    with pytest.raises(TokenRefreshError):
        await service.refresh_access_token("RT-old")


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_refresh(
    service: GoogleOAuthService, provider: FakeGoogleProvider, clock: FakeClock
) -> None:
    service.save_credentials("u1", _stored(clock, expires_in_ms=MINUTE_MS))

    tokens = await asyncio.gather(
        *(service.get_valid_access_token("u1") for _ in range(5))
    )

    assert tokens == ["AT2"] * 5
    assert len(provider.calls("/token")) == 1


@pytest.mark.asyncio
async def test_user_locks_are_released_after_refresh(
    service: GoogleOAuthService, clock: FakeClock
) -> None:
    service.save_credentials("u1", _stored(clock, expires_in_ms=MINUTE_MS))

    assert await service.get_valid_access_token("u1") == "AT2"
    gc.collect()

    assert "u1" not in service._user_locks


@pytest.mark.asyncio
async def test_get_user_info_uses_valid_token(
    service: GoogleOAuthService, provider: FakeGoogleProvider, clock: FakeClock
) -> None:
    service.save_credentials("u1", _stored(clock, expires_in_ms=-MINUTE_MS))

    info = await service.get_user_info("u1")

    assert info["email"] == "a@b.com"
    assert provider.calls("/userinfo")[0].headers["authorization"] == "Bearer AT2"


@pytest.mark.asyncio
async def test_get_user_info_requires_email(
    service: GoogleOAuthService, provider: FakeGoogleProvider, clock: FakeClock
) -> None:
    provider.userinfo_body = {"name": "Ada"}
    service.save_credentials("u1", _stored(clock, expires_in_ms=10 * MINUTE_MS))

    with pytest.raises(IncompleteIdentityError):
        await service.get_user_info("u1")


@pytest.mark.asyncio
async def test_google_credentials_wrap_valid_token(
    service: GoogleOAuthService, clock: FakeClock
) -> None:
    service.save_credentials("u1", _stored(clock, expires_in_ms=10 * MINUTE_MS))

    credentials = await service.get_google_credentials("u1")

    assert credentials.token == "AT-old"
    assert credentials.refresh_token == "RT-old"
    assert credentials.client_id == "client"
    assert credentials.token_uri == "https://oauth.test/token"
    assert credentials.scopes == ["openid", "email"]


@pytest.mark.asyncio
async def test_revoke_without_credentials_makes_no_call(
    service: GoogleOAuthService, provider: FakeGoogleProvider
) -> None:
    assert await service.revoke_token("u1") is False
    assert provider.requests == []


@pytest.mark.asyncio
async def test_revoke_calls_provider_and_deletes(
    service: GoogleOAuthService, provider: FakeGoogleProvider, clock: FakeClock
) -> None:
    service.save_credentials("u1", _stored(clock, expires_in_ms=10 * MINUTE_MS))

    assert await service.revoke_token("u1") is True

    revoke = provider.calls("/revoke")[0]
    assert revoke.method == "POST"
    assert revoke.url.params["token"] == "AT-old"
    assert service.get_credentials("u1") is None
    assert await service.revoke_token("u1") is False


@pytest.mark.asyncio
async def test_revoke_deletes_locally_when_provider_fails(
    service: GoogleOAuthService, provider: FakeGoogleProvider, clock: FakeClock
) -> None:
    provider.revoke_status = 503
    service.save_credentials("u1", _stored(clock, expires_in_ms=10 * MINUTE_MS))

    assert await service.revoke_token("u1") is True
    assert service.is_authenticated("u1") is False


@pytest.mark.asyncio
async def test_revoke_deletes_locally_without_configuration(
    tmp_path: Path, provider: FakeGoogleProvider, clock: FakeClock
) -> None:
    service = build_service(str(tmp_path / "oauth.db"), provider, clock, client_id="")
    service.save_credentials("u1", _stored(clock, expires_in_ms=10 * MINUTE_MS))

    assert await service.revoke_token("u1") is True
    assert provider.requests == []
    assert service.get_credentials("u1") is None



@pytest.mark.asyncio
async def test_revoke_during_refresh_leaves_no_credentials(
    service: GoogleOAuthService, provider: FakeGoogleProvider, clock: FakeClock
) -> None:
    service.save_credentials("u1", _stored(clock, expires_in_ms=-MINUTE_MS))
    provider.token_gate = asyncio.Event()

    refresh = asyncio.create_task(service.get_valid_access_token("u1"))
    for _ in range(100):
        if provider.calls("/token"):
            break
        await asyncio.sleep(0)
    assert len(provider.calls("/token")) == 1

    revoke = asyncio.create_task(service.revoke_token("u1"))
    waiter = asyncio.create_task(service.get_valid_access_token("u1"))
    for _ in range(10):
        await asyncio.sleep(0)
    assert provider.calls("/revoke") == []

    provider.token_gate.set()

    assert await refresh == "AT2"
    assert await revoke is True
    with pytest.raises(NotAuthenticatedError):
        await waiter

    assert service.get_credentials("u1") is None
    assert provider.calls("/revoke")[0].url.params["token"] == "AT2"
    assert len(provider.calls("/token")) == 1
