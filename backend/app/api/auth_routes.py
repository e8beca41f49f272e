"""
Authentication API routes.

Endpoints:
- POST /auth/login - Login with email/password
- POST /auth/logout - Revoke the current token (optionally every session)
- POST /auth/refresh - Swap the current token for a new one
- GET /auth/me - Get current user info
- POST /auth/register - Create an account and send its verification code
- POST /auth/verify-otp - Confirm an account with its code
- POST /auth/resend-otp - Send a new verification code
- GET /auth/csrf-token - Issue a double-submit CSRF token
"""

import secrets
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.models import User
from app.config import get_settings
from app.dependencies.auth import SessionContext, get_current_user, get_session
from app.middleware.rate_limit import limiter, login_limit, recovery_limit
from app.services.auth_service import AuthService, SessionGrant
from app.services.registration_service import RegistrationService
from app.schemas.auth_schemas import (
    CsrfTokenResponse,
    ErrorResponse,
    LoginRequest,
    LogoutRequest,
    MessageResponse,
    RegisterRequest,
    RegisterResponse,
    ResendOtpRequest,
    ResendOtpResponse,
    TokenResponse,
    UserResponse,
    UserSummary,
    VerifyOtpRequest,
)

router = APIRouter(prefix="/auth", tags=["Authentication"])
settings = get_settings()

_ERRORS = {
    401: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
}


def _token_response(grant: SessionGrant) -> TokenResponse:
    return TokenResponse(
        access_token=grant.access_token,
        token_type="bearer",
        expires_in=grant.expires_in,
        user=UserSummary.model_validate(grant.user),
    )


@router.post(
    "/login",
    response_model=TokenResponse,
    status_code=status.HTTP_200_OK,
    summary="Login with email and password",
    responses=_ERRORS,
)
@limiter.limit(login_limit)
async def login(
    request: Request,
    credentials: LoginRequest,
    db: Session = Depends(get_db)
):
    """
    Authenticate user and return a session token.

    **Usage:**
    ```
    POST /auth/login
    {
        "email": "client@example.com",
        "password": "SecurePassword123!"
    }
    ```

    **Errors:**
    - 401: Incorrect email or password (same message for unknown accounts)
    - 403: ACCOUNT_LOCKED (5 failures lock the account for 15 minutes),
      ACCOUNT_NOT_CONFIRMED, ACCOUNT_INACTIVE
    """
    grant = AuthService(db).login(credentials.email, credentials.password)
    return _token_response(grant)


@router.post(
    "/logout",
    response_model=MessageResponse,
    status_code=status.HTTP_200_OK,
    summary="Logout",
    responses=_ERRORS,
)
async def logout(
    body: Optional[LogoutRequest] = None,
    session: SessionContext = Depends(get_session),
    db: Session = Depends(get_db)
):
    """
    Revoke the presented token.

    With `{"all": true}` every other session of the account is ended as well,
    including tokens issued on other devices.
    """
    all_sessions = bool(body and body.all)
    AuthService(db).logout(session.token, session.claims, all_sessions=all_sessions)

    message = "Logged out from all sessions" if all_sessions else "Logged out successfully"
    return MessageResponse(message=message)


@router.post(
    "/refresh",
    response_model=TokenResponse,
    status_code=status.HTTP_200_OK,
    summary="Refresh session token",
    responses=_ERRORS,
)
async def refresh_token(
    session: SessionContext = Depends(get_session),
    db: Session = Depends(get_db)
):
    """
    Swap a valid session token for a new one.

    The presented token is revoked; a revoked, expired or idle token cannot
    be refreshed.
    """
    grant = AuthService(db).refresh(session.token, session.claims, session.user)
    return _token_response(grant)


@router.get(
    "/me",
    response_model=UserResponse,
    status_code=status.HTTP_200_OK,
    summary="Get current user info",
    responses=_ERRORS,
)
async def get_current_user_info(
    current_user: User = Depends(get_current_user)
):
    """Profile of the currently authenticated user."""
    return UserResponse.from_user(current_user)


# ==================== Registration ====================

@router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new client account",
    responses={409: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
@limiter.limit(recovery_limit)
async def register(
    request: Request,
    body: RegisterRequest,
    db: Session = Depends(get_db)
):
    """
    Create an unconfirmed account and send a 6-digit verification code by
    email or SMS. The code expires after 2 minutes.

    If the code cannot be delivered the account is still created;
    `notification_sent` is false and the code can be requested again.
    """
    result = RegistrationService(db).register(body)

    return RegisterResponse(
        message=result.message,
        user_id=result.user.id,
        otp_channel=result.channel,
        notification_sent=result.notification_sent,
    )


@router.post(
    "/verify-otp",
    response_model=MessageResponse,
    status_code=status.HTTP_200_OK,
    summary="Verify registration code",
    responses={404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
@limiter.limit(login_limit)
async def verify_otp(
    request: Request,
    body: VerifyOtpRequest,
    db: Session = Depends(get_db)
):
    """Confirm an account. Expired and wrong codes are rejected."""
    RegistrationService(db).verify_otp(body.email, body.code)
    return MessageResponse(message="Account verified. You can now sign in.")


@router.post(
    "/resend-otp",
    response_model=ResendOtpResponse,
    status_code=status.HTTP_200_OK,
    summary="Resend registration code",
    responses={404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
@limiter.limit(recovery_limit)
async def resend_otp(
    request: Request,
    body: ResendOtpRequest,
    db: Session = Depends(get_db)
):
    """Replace the pending code with a new one."""
    sent = RegistrationService(db).resend_otp(body.email, body.channel)

    if sent:
        message = f"A new code was sent by {body.channel.value}."
    else:
        message = "A new code was generated but could not be delivered. Try again later."

    return ResendOtpResponse(message=message, notification_sent=sent)


# ==================== CSRF ====================

@router.get(
    "/csrf-token",
    response_model=CsrfTokenResponse,
    summary="Issue a CSRF token"
)
async def get_csrf_token(response: Response):
    """
    Set the `csrf_token` cookie and return the same value.

    Browser clients echo it in the `X-CSRF-Token` header on POST, PUT, PATCH
    and DELETE requests.
    """
    token = secrets.token_urlsafe(32)
    response.set_cookie(
        key=settings.csrf_cookie_name,
        value=token,
        httponly=False,
        secure=not settings.debug,
        samesite="strict",
        max_age=settings.jwt_session_expire_minutes * 60,
    )
    return CsrfTokenResponse(csrf_token=token)
