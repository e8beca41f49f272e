"""
Registration and OTP confirmation.

New password accounts start unconfirmed. A 6-digit code (stored as SHA256)
is sent by email or SMS and must be verified within ``otp_expire_minutes``
before the account can log in. Notification failures never undo the
registration; the result reports ``notification_sent=False`` instead.
"""

import hashlib
import hmac
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config import get_settings
from app.error_handlers import ConflictError, NotFoundError, ValidationError
from app.models import User, UserRole
from app.schemas.auth_schemas import OtpChannel, RegisterRequest
from app.services.credential_service import COMMON_ANSWER_MESSAGE, CredentialService, PasswordValidationError
from app.services.email_service import EmailService
from app.services.sms_service import SMSService
from app.utils.security import is_common_answer, mask_email

settings = get_settings()
logger = logging.getLogger(__name__)


@dataclass
class RegistrationResult:
    user: User
    channel: OtpChannel
    notification_sent: bool

    @property
    def message(self) -> str:
        if self.notification_sent:
            return f"Account created. We sent a verification code by {self.channel.value}."
        return (
            "Account created, but the verification code could not be delivered. "
            "Request a new code or contact support."
        )


class RegistrationService:
    """Service for account creation and OTP confirmation"""

    def __init__(
        self,
        db: Session,
        email_service: Optional[EmailService] = None,
        sms_service: Optional[SMSService] = None,
    ):
        self.db = db
        self.credentials = CredentialService(db)
        self.email_service = email_service or EmailService()
        self.sms_service = sms_service or SMSService()

    def register(self, request: RegisterRequest, now: Optional[datetime] = None) -> RegistrationResult:
        """
        Create an unconfirmed account and send its OTP.

        Raises:
            ConflictError: Email already registered
            ValidationError: Weak password or guessable security answer
        """
        if self.credentials.email_exists(request.email):
            raise ConflictError("Email is already registered")

        try:
            CredentialService.validate_password_policy(
                request.password,
                personal_data=[request.name, request.email.split("@")[0], request.phone],
            )
        except PasswordValidationError as e:
            raise ValidationError(str(e))

        if is_common_answer(request.security_answer):
            raise ValidationError(COMMON_ANSWER_MESSAGE)

        if request.otp_channel == OtpChannel.SMS and not request.phone:
            raise ValidationError("A phone number is required to receive the code by SMS")

        try:
            user = self.credentials.create(
                email=request.email,
                name=request.name,
                phone=request.phone,
                birth_date=request.birth_date,
                hashed_password=CredentialService.hash_password(request.password),
                security_question=request.security_question,
                security_answer_hash=CredentialService.hash_answer(request.security_answer),
                role=UserRole.CLIENT.value,
                is_confirmed=False,
                accepts_privacy_notice=request.accepts_privacy_notice,
                accepts_promotions=request.accepts_promotions,
            )
        except IntegrityError:
            self.db.rollback()
            raise ConflictError("Email is already registered")

        logger.info(f"User registered: {mask_email(user.email)}")

        code = self.issue_otp(user, now=now)
        sent = self._deliver_otp(user, code, request.otp_channel)

        return RegistrationResult(user=user, channel=request.otp_channel, notification_sent=sent)

    def issue_otp(self, user: User, now: Optional[datetime] = None) -> str:
        """Store a fresh code (hash + expiry) and return it in clear for delivery."""
        now = now or datetime.utcnow()
        code = self._generate_otp()

        user.otp_code_hash = self._hash_otp(code)
        user.otp_expires_at = now + timedelta(minutes=settings.otp_expire_minutes)
        self.db.commit()

        return code

    def verify_otp(self, email: str, code: str, now: Optional[datetime] = None) -> User:
        """
        Confirm an account with its OTP.

        Raises:
            NotFoundError: No such account
            ValidationError: Already confirmed, no active code, expired or wrong code
        """
        now = now or datetime.utcnow()
        user = self.credentials.find_by_email(email)
        if not user:
            raise NotFoundError("User not found", resource_type="user")

        if user.is_confirmed:
            raise ValidationError("This account is already verified")

        if not user.otp_code_hash or not user.otp_expires_at:
            raise ValidationError("No active code. Request a new one.")

        if now > user.otp_expires_at:
            raise ValidationError(
                f"Code expired. The code is only valid for {settings.otp_expire_minutes} minutes. Request a new one."
            )

        if not hmac.compare_digest(user.otp_code_hash, self._hash_otp(code.strip())):
            raise ValidationError("Incorrect code")

        user.is_confirmed = True
        user.otp_code_hash = None
        user.otp_expires_at = None
        self.db.commit()

        logger.info(f"Account verified: {mask_email(user.email)}")
        return user

    def resend_otp(
        self,
        email: str,
        channel: OtpChannel = OtpChannel.EMAIL,
        now: Optional[datetime] = None,
    ) -> bool:
        """
        Replace the pending code with a new one and send it.

        Returns:
            True if the notification was delivered

        Raises:
            NotFoundError: No such account
            ValidationError: Already confirmed, or SMS requested without a phone
        """
        user = self.credentials.find_by_email(email)
        if not user:
            raise NotFoundError("User not found", resource_type="user")

        if user.is_confirmed:
            raise ValidationError("This account is already verified")

        if channel == OtpChannel.SMS and not user.phone:
            raise ValidationError("No phone number on file for this account")

        code = self.issue_otp(user, now=now)
        return self._deliver_otp(user, code, channel)

    def _deliver_otp(self, user: User, code: str, channel: OtpChannel) -> bool:
        if channel == OtpChannel.SMS:
            sent = self.sms_service.send_otp_sms(user.phone, code)
        else:
            sent = self.email_service.send_otp_email(user.email, user.name, code)

        if not sent:
            logger.warning(f"OTP delivery by {channel.value} failed for {mask_email(user.email)}")
        return sent

    @staticmethod
    def _generate_otp() -> str:
        return f"{secrets.randbelow(10 ** settings.otp_length):0{settings.otp_length}d}"

    @staticmethod
    def _hash_otp(code: str) -> str:
        return hashlib.sha256(code.encode()).hexdigest()
