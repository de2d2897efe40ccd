"""
FastAPI routes for the Google OAuth credential service.
"""

from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse

from app.core.errors import (
    ConfigurationError,
    IdentityLookupError,
    IncompleteIdentityError,
    NotAuthenticatedError,
    StorageWriteError,
    TokenExchangeError,
    TokenExpiredError,
)
from app.dependencies import get_app_settings, get_google_oauth_service
from app.schemas import (
    AuthorizationUrlResponse,
    AuthStatusResponse,
    OAuthCallbackPayload,
    OAuthCallbackResult,
    RevokeResponse,
)

router = APIRouter()
logger = logging.getLogger(__name__)


def _wants_html(request: Request) -> bool:
    return "text/html" in request.headers.get("accept", "").lower()


@router.get("/health", status_code=HTTPStatus.OK)
async def healthcheck() -> dict:
    """Simple health endpoint for monitoring."""
    return {"status": "ok"}


@router.get("/auth/google/authorize", status_code=HTTPStatus.OK)
async def start_google_oauth_flow(
    request: Request,
    oauth_service: Annotated[Any, Depends(get_google_oauth_service)],
    user_id: str = Query(..., description="User identifier initiating authentication."),
    redirect: bool = Query(
        default=False,
        description="When true, respond with a redirect to the Google consent screen.",
    ),
) -> Any:
    """
    Kick off the OAuth flow by storing a state token and building the consent URL.
    """
    try:
        authorization_url = oauth_service.get_authorization_url(user_id)
    except ConfigurationError as exc:
        logger.error("Google OAuth is not configured: %s", exc)
        raise HTTPException(
            status_code=HTTPStatus.SERVICE_UNAVAILABLE,
            detail="Google authorization is not configured.",
        ) from exc
    except StorageWriteError as exc:
        raise HTTPException(
            status_code=HTTPStatus.SERVICE_UNAVAILABLE,
            detail="Unable to start Google authorization.",
        ) from exc

    if redirect or _wants_html(request):
        return RedirectResponse(url=authorization_url, status_code=HTTPStatus.TEMPORARY_REDIRECT)

    return AuthorizationUrlResponse(authorization_url=authorization_url)


@router.post("/auth/google/callback", status_code=HTTPStatus.OK)
async def handle_google_oauth_callback(
    payload: OAuthCallbackPayload,
    oauth_service: Annotated[Any, Depends(get_google_oauth_service)],
) -> OAuthCallbackResult:
    """Validate the state, exchange the code and store the resulting credentials."""
    user_id = oauth_service.validate_state(payload.state)
    if not user_id:
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST,
            detail="OAuth state token is invalid or has expired.",
        )

    try:
        credentials = await oauth_service.exchange_code_for_tokens(payload.code)
    except ConfigurationError as exc:
        logger.error("Google OAuth is not configured: %s", exc)
        raise HTTPException(
            status_code=HTTPStatus.SERVICE_UNAVAILABLE,
            detail="Google authorization is not configured.",
        ) from exc
    except (TokenExchangeError, IdentityLookupError, IncompleteIdentityError) as exc:
        logger.warning("OAuth callback for user %s failed: %s", user_id, exc)
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST,
            detail="Failed to exchange authorization code.",
        ) from exc

    try:
        oauth_service.save_credentials(user_id, credentials)
    except StorageWriteError as exc:
        raise HTTPException(
            status_code=HTTPStatus.SERVICE_UNAVAILABLE,
            detail="Unable to store Google credentials.",
        ) from exc

    logger.info("Connected Google account for user %s", user_id)
    return OAuthCallbackResult(user_id=user_id, email=credentials.email)


@router.get("/auth/google/callback", status_code=HTTPStatus.OK)
async def handle_google_oauth_callback_get(
    request: Request,
    oauth_service: Annotated[Any, Depends(get_google_oauth_service)],
    settings: Annotated[Any, Depends(get_app_settings)],
    state: str = Query(..., description="OAuth state token."),
    code: str = Query(..., description="Authorization code returned by Google."),
    redirect: bool = Query(
        default=False,
        description="When true, redirect browser clients instead of returning JSON.",
    ),
) -> Response:
    result = await handle_google_oauth_callback(
        payload=OAuthCallbackPayload(state=state, code=code),
        oauth_service=oauth_service,
    )

    redirect_target = settings.frontend_base_url
    if redirect_target and (redirect or _wants_html(request)):
        return RedirectResponse(url=str(redirect_target), status_code=HTTPStatus.TEMPORARY_REDIRECT)

    return JSONResponse(content=result.model_dump())


@router.get("/auth/google/status", status_code=HTTPStatus.OK)
async def google_auth_status(
    oauth_service: Annotated[Any, Depends(get_google_oauth_service)],
    user_id: str = Query(..., description="User identifier to check."),
) -> AuthStatusResponse:
    return AuthStatusResponse(
        user_id=user_id, authenticated=oauth_service.is_authenticated(user_id)
    )


@router.get("/auth/google/userinfo", status_code=HTTPStatus.OK)
async def google_user_info(
    oauth_service: Annotated[Any, Depends(get_google_oauth_service)],
    user_id: str = Query(..., description="User whose Google identity is requested."),
) -> dict:
    """Return the Google identity for a connected user."""
    try:
        return await oauth_service.get_user_info(user_id)
    except ConfigurationError as exc:
        logger.error("Google OAuth is not configured: %s", exc)
        raise HTTPException(
            status_code=HTTPStatus.SERVICE_UNAVAILABLE,
            detail="Google authorization is not configured.",
        ) from exc
    except (NotAuthenticatedError, TokenExpiredError) as exc:
        raise HTTPException(
            status_code=HTTPStatus.UNAUTHORIZED,
            detail="Google account not connected.",
        ) from exc
    except (IdentityLookupError, IncompleteIdentityError) as exc:
        raise HTTPException(
            status_code=HTTPStatus.BAD_GATEWAY,
            detail="Unable to load Google user info.",
        ) from exc


@router.post("/auth/google/revoke", status_code=HTTPStatus.OK)
async def revoke_google_credentials(
    oauth_service: Annotated[Any, Depends(get_google_oauth_service)],
    user_id: str = Query(..., description="User disconnecting their Google account."),
) -> RevokeResponse:
    revoked = await oauth_service.revoke_token(user_id)
    return RevokeResponse(user_id=user_id, revoked=revoked)
