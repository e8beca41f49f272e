"""
Authentication service: login, logout and token refresh.

Login order:
1. Lockout guard (locked accounts are refused before the password is checked)
2. Credential check (unknown email and wrong password look identical)
3. Account state (inactive, unconfirmed)
4. Counter reset, activity initialisation, token issue
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from app.error_handlers import (
    AccountInactiveError,
    AccountLockedError,
    AccountNotConfirmedError,
    AuthenticationError,
)
from app.models import User
from app.services.credential_service import CredentialService
from app.services.lockout_service import LockoutService
from app.services.revocation_service import RevocationService
from app.services.token_service import TokenService
from app.utils.security import mask_email, sanitize_email

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Incorrect email or password"


@dataclass
class SessionGrant:
    """A freshly issued session"""
    user: User
    access_token: str
    expires_in: int


class AuthService:
    """Service for session lifecycle operations"""

    def __init__(self, db: Session):
        self.db = db
        self.credentials = CredentialService(db)
        self.lockout = LockoutService(db)
        self.revocations = RevocationService(db)

    def login(self, email: str, password: str, now: Optional[datetime] = None) -> SessionGrant:
        """
        Authenticate with email and password.

        Args:
            email: Account email (case-insensitive)
            password: Plain text password
            now: Attempt time (default: current time)

        Returns:
            SessionGrant with a new session token

        Raises:
            AccountLockedError: Too many recent failures
            AuthenticationError: Unknown email or wrong password
            AccountInactiveError: Account deactivated
            AccountNotConfirmedError: Registration OTP not verified
        """
        now = now or datetime.utcnow()
        email = sanitize_email(email)

        status = self.lockout.is_locked(email, now=now)
        if status.locked:
            logger.warning(f"Login refused for locked account: {mask_email(email)}")
            raise AccountLockedError(status.until)

        user = self.credentials.find_by_email(email)
        if not user:
            CredentialService.dummy_verify()
            self.lockout.record_failure(email, now=now)
            logger.info(f"Failed login for {mask_email(email)}")
            raise AuthenticationError(INVALID_CREDENTIALS)

        if not CredentialService.verify_password(password, user.hashed_password):
            self.lockout.record_failure(email, now=now)
            logger.info(f"Failed login for {mask_email(email)}")
            raise AuthenticationError(INVALID_CREDENTIALS)

        if not user.is_active:
            raise AccountInactiveError()

        if not user.is_confirmed and not user.google_id:
            raise AccountNotConfirmedError()

        self.lockout.reset_on_success(email)

        user.last_login = now
        user.last_activity_at = now
        self.db.commit()

        token = TokenService.issue(user.id, user.email, now=now, valid_after=user.tokens_valid_after)
        logger.info(f"User logged in: {mask_email(user.email)}")

        return SessionGrant(user=user, access_token=token, expires_in=TokenService.session_lifetime_seconds())

    def logout(self, token: str, claims: dict, all_sessions: bool = False) -> None:
        """
        Revoke the presented token, and optionally every session of its owner.

        Args:
            token: Raw session token
            claims: Its decoded claims
            all_sessions: Also set the owner's global logout watermark
        """
        user_id = TokenService.subject(claims)
        self.revocations.revoke(token, TokenService.expires_at(claims), user_id=user_id)

        if all_sessions:
            self.revocations.revoke_all_for_principal(user_id)
            logger.info(f"User {user_id} logged out of all sessions")
        else:
            logger.info(f"User {user_id} logged out")

    def refresh(self, token: str, claims: dict, user: User) -> SessionGrant:
        """
        Swap a valid session token for a new one.

        The presented token is revoked so it cannot be refreshed twice.
        """
        self.revocations.revoke(token, TokenService.expires_at(claims), user_id=user.id)

        new_token = TokenService.issue(user.id, user.email, valid_after=user.tokens_valid_after)
        logger.debug(f"Session refreshed for user {user.id}")

        return SessionGrant(user=user, access_token=new_token, expires_in=TokenService.session_lifetime_seconds())
