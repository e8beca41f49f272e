"""
Password recovery API routes.

Flow A (security question):
1. POST /recovery/question - Get the question for an email
2. POST /recovery/question/answer - Answer it, receive a reset token

Flow B (email link):
1. POST /recovery/email - Request a reset link (same response for every email)

Both flows:
- POST /recovery/validate - Check a token without using it
- POST /recovery/reset - Set a new password with the token (single use)
"""

import logging

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.middleware.rate_limit import limiter, recovery_limit
from app.services.recovery_service import RecoveryService
from app.schemas.auth_schemas import ErrorResponse, MessageResponse
from app.schemas.recovery_schemas import (
    EmailRecoveryRequest,
    PasswordResetConfirm,
    RecoveryTokenResponse,
    RecoveryTokenValidate,
    SecurityAnswerRequest,
    SecurityQuestionRequest,
    SecurityQuestionResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/recovery", tags=["Password Recovery"])

EMAIL_REQUEST_MESSAGE = "If an account exists with this email, a reset link has been sent."


def _client_ip(request: Request):
    return request.client.host if request.client else None


@router.post(
    "/question",
    response_model=SecurityQuestionResponse,
    summary="Get security question",
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
@limiter.limit(recovery_limit)
async def get_security_question(
    request: Request,
    body: SecurityQuestionRequest,
    db: Session = Depends(get_db)
):
    """
    Return the security question of an active account.

    Google accounts without a question get a `RECOVERY_FLOW_ERROR` telling
    the client to use Google sign-in instead.
    """
    question = RecoveryService(db).get_security_question(body.email)
    return SecurityQuestionResponse(email=body.email, question=question)


@router.post(
    "/question/answer",
    response_model=RecoveryTokenResponse,
    summary="Answer security question",
    responses={401: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
@limiter.limit(recovery_limit)
async def answer_security_question(
    request: Request,
    body: SecurityAnswerRequest,
    db: Session = Depends(get_db)
):
    """
    Check the answer. A correct answer returns a single-use reset token
    valid for 15 minutes.
    """
    token, expires_in = RecoveryService(db).answer_security_question(
        body.email, body.answer, request_ip=_client_ip(request)
    )
    return RecoveryTokenResponse(
        message="Answer accepted. Use the token to set a new password.",
        token=token,
        expires_in=expires_in,
    )


@router.post(
    "/email",
    response_model=MessageResponse,
    status_code=status.HTTP_200_OK,
    summary="Request password reset link"
)
@limiter.limit(recovery_limit)
async def request_reset_email(
    request: Request,
    body: EmailRecoveryRequest,
    db: Session = Depends(get_db)
):
    """
    Email a reset link valid for 10 minutes.

    **Security Notes:**
    - Always returns the same message to prevent email enumeration
    - Google-only and unknown accounts receive nothing
    - Only one active link per account
    """
    service = RecoveryService(db)
    _, token = service.request_reset(body.email, request_ip=_client_ip(request))

    if token and not service.send_reset_email(body.email, token):
        logger.warning("Reset link generated but the email could not be sent")

    # Always return same message to prevent email enumeration
    return MessageResponse(message=EMAIL_REQUEST_MESSAGE)


@router.post(
    "/validate",
    response_model=MessageResponse,
    summary="Validate reset token",
    responses={401: {"model": ErrorResponse}},
)
@limiter.limit(recovery_limit)
async def validate_reset_token(
    request: Request,
    body: RecoveryTokenValidate,
    db: Session = Depends(get_db)
):
    """Check that a token is usable without consuming it."""
    RecoveryService(db).validate_token(body.email, body.token)
    return MessageResponse(message="Token is valid")


@router.post(
    "/reset",
    response_model=MessageResponse,
    summary="Reset password",
    responses={401: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
@limiter.limit(recovery_limit)
async def reset_password(
    request: Request,
    body: PasswordResetConfirm,
    db: Session = Depends(get_db)
):
    """
    Set a new password with a reset token from either flow.

    The token is spent on success. Every existing session of the account is
    ended and the account is unlocked and marked confirmed.
    """
    RecoveryService(db).reset_password(body.email, body.token, body.new_password)
    return MessageResponse(message="Password updated. Sign in with your new password.")
