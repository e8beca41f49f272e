"""
OAuth API routes for Google sign-in.

Flow:
1. GET /auth/oauth/providers - Get list of configured providers
2. GET /auth/oauth/{provider}/login - Redirect to provider login
3. GET /auth/oauth/{provider}/callback - Handle provider callback, redirect
   to the frontend with a single-use exchange code
4. POST /auth/oauth/exchange - Trade the exchange code for a session token
"""

import logging
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field
from typing import List, Optional

from app.database import get_db
from app.config import get_settings
from app.error_handlers import APIError, AuthenticationError, NotFoundError
from app.services.oauth_service import OAuthCodeExchange, OAuthService, OAuthProvider, OAuthError
from app.services.cache import cache_key, get_cache
from app.schemas.auth_schemas import ErrorResponse, TokenResponse, UserSummary

logger = logging.getLogger(__name__)
settings = get_settings()

router = APIRouter(prefix="/auth/oauth", tags=["OAuth"])

_STATE_PREFIX = "oauth_state"


class OAuthProvidersResponse(BaseModel):
    """Available OAuth providers"""
    enabled: bool
    providers: List[str]


class OAuthExchangeRequest(BaseModel):
    """Exchange code received on the frontend callback page"""
    code: str = Field(..., min_length=1, max_length=128)


def _resolve_provider(provider: str) -> OAuthProvider:
    try:
        oauth_provider = OAuthProvider(provider)
    except ValueError:
        raise NotFoundError(f"Unknown provider: {provider}", resource_type="oauth_provider")

    if not OAuthService.is_provider_configured(oauth_provider):
        raise NotFoundError(f"Provider {provider} is not configured", resource_type="oauth_provider")

    return oauth_provider


def _frontend_error(reason: str) -> RedirectResponse:
    return RedirectResponse(url=f"{settings.frontend_url}/login?{urlencode({'oauth_error': reason})}")


@router.get(
    "/providers",
    response_model=OAuthProvidersResponse,
    summary="Get available OAuth providers"
)
async def get_oauth_providers():
    """
    Get list of configured OAuth providers.

    Returns:
    - enabled: Whether OAuth is enabled
    - providers: List of configured provider names
    """
    return OAuthProvidersResponse(
        enabled=settings.oauth_enabled,
        providers=OAuthService.get_configured_providers()
    )


@router.get(
    "/{provider}/login",
    summary="Initiate OAuth login",
    responses={404: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)
async def oauth_login(
    provider: str,
    db: Session = Depends(get_db)
):
    """
    Initiate OAuth login flow.

    Redirects user to the OAuth provider's login page. The `state` value is
    kept in Redis for 10 minutes and checked on the callback.
    """
    oauth_provider = _resolve_provider(provider)
    oauth_service = OAuthService(db)

    # Generate state token for CSRF protection
    state = oauth_service.generate_state_token()
    if not get_cache().set(cache_key(_STATE_PREFIX, state), oauth_provider.value, ttl=settings.oauth_state_ttl_seconds):
        raise APIError(
            "Google sign-in is temporarily unavailable",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            error_code="SERVICE_UNAVAILABLE",
        )

    return RedirectResponse(url=oauth_service.get_auth_url(oauth_provider, state))


@router.get(
    "/{provider}/callback",
    summary="OAuth callback handler"
)
async def oauth_callback(
    provider: str,
    code: Optional[str] = Query(default=None),
    state: Optional[str] = Query(default=None),
    error: Optional[str] = Query(default=None),
    db: Session = Depends(get_db)
):
    """
    Handle OAuth provider callback.

    Signs the user in (creating the account on first use) and redirects the
    browser to `{frontend_url}/auth/callback?code=<exchange code>`. The
    session token itself never appears in a URL. Failures redirect to
    `{frontend_url}/login?oauth_error=<reason>`.
    """
    # Handle provider errors
    if error:
        logger.warning(f"OAuth error from {provider}: {error}")
        return _frontend_error("provider_denied")

    # Validate state (CSRF protection); a state value is usable once
    stored_provider = get_cache().pop(cache_key(_STATE_PREFIX, state)) if state else None
    if not code or stored_provider != provider:
        logger.warning("OAuth callback with missing code or invalid state")
        return _frontend_error("invalid_state")

    oauth_provider = _resolve_provider(provider)
    oauth_service = OAuthService(db)

    try:
        user, session_token = await oauth_service.authenticate(oauth_provider, code)
    except OAuthError as e:
        logger.error(f"OAuth authentication failed: {e}")
        return _frontend_error("authentication_failed")

    exchange_code = OAuthCodeExchange(db).issue_code(user, session_token)
    return RedirectResponse(url=f"{settings.frontend_url}/auth/callback?{urlencode({'code': exchange_code})}")


@router.post(
    "/exchange",
    response_model=TokenResponse,
    summary="Exchange OAuth code for a session token",
    responses={401: {"model": ErrorResponse}},
)
async def oauth_code_exchange(
    body: OAuthExchangeRequest,
    db: Session = Depends(get_db)
):
    """
    Trade the code from the callback redirect for the session token.

    Codes expire after 5 minutes and work once.
    """
    result = OAuthCodeExchange(db).exchange(body.code)
    if result is None:
        raise AuthenticationError("Invalid or expired code")

    user, session_token = result
    return TokenResponse(
        access_token=session_token,
        token_type="bearer",
        expires_in=settings.jwt_oauth_session_expire_days * 24 * 60 * 60,
        user=UserSummary.model_validate(user),
    )
