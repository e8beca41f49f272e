"""
Password recovery service.

Two independent flows, both ending in a single-use, time-boxed token that
``reset_password`` consumes:

- Security question: question -> correct answer -> token (15 minutes)
- Email link: request -> token mailed as a link (10 minutes)

Unknown, expired and already-used tokens fail with the same message.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional, Tuple
from urllib.parse import urlencode

from sqlalchemy.orm import Session

from app.config import get_settings
from app.error_handlers import AuthenticationError, NotFoundError, RecoveryFlowError, ValidationError
from app.models import RECOVERY_PURPOSES, TokenPurpose, User
from app.services.credential_service import CredentialService, PasswordValidationError
from app.services.email_service import EmailService
from app.services.one_time_token_service import OneTimeTokenService
from app.services.revocation_service import RevocationService
from app.utils.security import mask_email

settings = get_settings()
logger = logging.getLogger(__name__)

INVALID_RESET_TOKEN = "Invalid or expired reset token"
NO_SECURITY_QUESTION = "No security question found for this email"
GOOGLE_ACCOUNT_HINT = (
    "This account signs in with Google and has no security question. "
    "Use 'Continue with Google' to access it."
)


class RecoveryService:
    """Service for password recovery operations"""

    def __init__(self, db: Session, email_service: Optional[EmailService] = None):
        self.db = db
        self.credentials = CredentialService(db)
        self.tokens = OneTimeTokenService(db)
        self.revocations = RevocationService(db)
        self.email_service = email_service or EmailService()

    # ==================== Flow A: security question ====================

    def _question_holder(self, email: str) -> User:
        user = self.credentials.find_by_email(email)
        if not user or not user.is_active:
            raise NotFoundError(NO_SECURITY_QUESTION, resource_type="security_question")

        if not user.has_security_question:
            if user.is_oauth_only:
                raise RecoveryFlowError(GOOGLE_ACCOUNT_HINT)
            raise NotFoundError(NO_SECURITY_QUESTION, resource_type="security_question")

        return user

    def get_security_question(self, email: str) -> str:
        """
        Return the stored question for an active account.

        Raises:
            NotFoundError: Unknown, inactive, or no question configured
            RecoveryFlowError: Google-only account without a question
        """
        return self._question_holder(email).security_question

    def answer_security_question(
        self,
        email: str,
        answer: str,
        request_ip: Optional[str] = None,
    ) -> Tuple[str, int]:
        """
        Check the answer and issue a reset token.

        Failed answers are not counted by the login lockout; the endpoint is
        rate limited instead.

        Returns:
            Tuple of (token, seconds until expiry)

        Raises:
            NotFoundError / RecoveryFlowError: as get_security_question
            AuthenticationError: Wrong answer
        """
        user = self._question_holder(email)

        if not CredentialService.verify_answer(answer, user.security_answer_hash):
            logger.info(f"Wrong security answer for {mask_email(user.email)}")
            raise AuthenticationError("Incorrect security answer")

        ttl = timedelta(minutes=settings.recovery_question_token_expire_minutes)
        token = self.tokens.issue(user, TokenPurpose.SECURITY_QUESTION, ttl, request_ip=request_ip)

        logger.info(f"Security question answered, reset token issued for {mask_email(user.email)}")
        return token, int(ttl.total_seconds())

    # ==================== Flow B: email link ====================

    def request_reset(
        self,
        email: str,
        request_ip: Optional[str] = None
    ) -> Tuple[bool, Optional[str]]:
        """
        Request a password reset link for the given email.

        Args:
            email: User's email address
            request_ip: IP address of the requester

        Returns:
            Tuple of (success, reset_token)
            - Active password account: (True, reset_token)
            - Otherwise: (True, None) - same response to prevent enumeration
        """
        user = self.credentials.find_by_email(email)

        if not user or not user.is_active:
            logger.info(f"Password reset requested for unknown or inactive email: {mask_email(email)}")
            return True, None

        if user.is_oauth_only:
            logger.info(f"Password reset requested for Google-only account: {mask_email(email)}")
            return True, None

        ttl = timedelta(minutes=settings.recovery_email_token_expire_minutes)
        token = self.tokens.issue(user, TokenPurpose.EMAIL_LINK, ttl, request_ip=request_ip)

        logger.info(f"Password reset token generated for {mask_email(user.email)}")
        return True, token

    def send_reset_email(self, email: str, reset_token: str) -> bool:
        """
        Mail the reset link. Delivery failures are logged, not raised.

        Returns:
            True if the email was accepted by the SMTP server
        """
        query = urlencode({"token": reset_token, "email": email})
        reset_url = f"{settings.frontend_url}/reset-password?{query}"
        return self.email_service.send_password_reset_email(email, reset_url)

    # ==================== Shared: validate and reset ====================

    def validate_token(self, email: str, token: str, now: Optional[datetime] = None) -> User:
        """
        Check a reset token without consuming it.

        Raises:
            AuthenticationError: Token missing, expired, used, or for another email
        """
        record = self.tokens.find_valid(token, RECOVERY_PURPOSES, email=email, now=now)
        if not record or not record.user or not record.user.is_active:
            raise AuthenticationError(INVALID_RESET_TOKEN)
        return record.user

    def reset_password(
        self,
        email: str,
        token: str,
        new_password: str,
        now: Optional[datetime] = None,
    ) -> User:
        """
        Reset password using a valid reset token.

        The token is consumed with a conditional update; of two concurrent
        resets with the same token only one succeeds. On success the account
        is confirmed and unlocked and every existing session is revoked.

        Args:
            email: Account the token was issued for
            token: The reset token
            new_password: The new password to set
            now: Reference time (default: current time)

        Returns:
            The updated user

        Raises:
            AuthenticationError: Invalid, expired or used token
            ValidationError: Password policy violation or unchanged password
        """
        now = now or datetime.utcnow()
        record = self.tokens.find_valid(token, RECOVERY_PURPOSES, email=email, now=now)
        if not record or not record.user or not record.user.is_active:
            raise AuthenticationError(INVALID_RESET_TOKEN)

        user = record.user

        try:
            CredentialService.validate_password_policy(
                new_password, personal_data=CredentialService.personal_data_for(user)
            )
        except PasswordValidationError as e:
            raise ValidationError(str(e))

        if CredentialService.verify_password(new_password, user.hashed_password):
            raise ValidationError("New password must be different from the current password")

        if not self.tokens.consume(record, now=now):
            self.db.rollback()
            raise AuthenticationError(INVALID_RESET_TOKEN)

        self.credentials.set_password(user, new_password)
        user.is_confirmed = True
        user.failed_login_attempts = 0
        user.locked_until = None

        # Commits the consumption, the new hash and the watermark together
        self.revocations.revoke_all_for_principal(user.id, now=now)

        logger.info(f"Password reset successful for {mask_email(user.email)} via {record.purpose}")
        return user
