"""
Session token issuer.

Session tokens are HS256 JWTs carrying the principal id (``sub``), email, a
random ``jti``, the issue time (``iat``, epoch seconds), a ``last_activity``
stamp equal to ``iat`` and an expiry. Opaque one-time tokens (recovery,
OAuth exchange) are random hex strings stored only as SHA256 hashes.
"""

import calendar
import hashlib
import logging
import secrets
import uuid
from datetime import datetime, timedelta
from typing import Optional

from jose import JWTError, jwt

from app.config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)

# Known placeholder values that must never sign production tokens
INSECURE_SECRET_KEYS = {
    "",
    "changeme",
    "secret",
    "dev-secret-key-change-in-production",
}

SESSION_TOKEN_TYPE = "session"


def to_epoch(value: datetime) -> int:
    """Naive-UTC datetime to integer epoch seconds"""
    return calendar.timegm(value.utctimetuple())


def from_epoch(value: int) -> datetime:
    return datetime.utcfromtimestamp(value)


class TokenService:
    """Issues and decodes session tokens"""

    @staticmethod
    def ensure_signing_key() -> None:
        """
        Fail fast when the signing key is missing or a known placeholder.

        Raises:
            RuntimeError: outside debug mode. In debug mode a warning is logged.
        """
        key = settings.jwt_secret_key.strip()
        if key in INSECURE_SECRET_KEYS or key.startswith("CHANGE_ME"):
            message = (
                "JWT_SECRET_KEY is missing or set to a known insecure default. "
                "Generate a secure key with: python -c \"import secrets; print(secrets.token_urlsafe(64))\""
            )
            if not settings.debug:
                raise RuntimeError(message)
            logger.warning(
                "INSECURE JWT_SECRET_KEY detected. %s "
                "This is allowed in debug mode but MUST be fixed before deploying to production.",
                message,
            )

    @staticmethod
    def issue(
        user_id,
        email: str,
        expires_delta: Optional[timedelta] = None,
        now: Optional[datetime] = None,
        valid_after: Optional[int] = None,
    ) -> str:
        """
        Create a signed session token.

        Args:
            user_id: Principal UUID
            email: Principal email
            expires_delta: Validity window (default: password-login session length)
            now: Issue time, naive UTC (default: current time)
            valid_after: The principal's logout watermark. ``iat`` is moved past
                it so a session opened in the same second as a global logout
                is not born revoked.

        Returns:
            Encoded JWT
        """
        issued_at = now or datetime.utcnow()
        expires_delta = expires_delta or timedelta(minutes=settings.jwt_session_expire_minutes)
        iat = to_epoch(issued_at)
        if valid_after is not None and iat <= valid_after:
            iat = valid_after + 1

        payload = {
            "sub": str(user_id),
            "email": email,
            "jti": uuid.uuid4().hex,
            "iat": iat,
            "last_activity": iat,
            "type": SESSION_TOKEN_TYPE,
            "exp": iat + int(expires_delta.total_seconds()),
        }

        return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)

    @staticmethod
    def issue_oauth_session(user_id, email: str, valid_after: Optional[int] = None) -> str:
        """Google sign-in sessions use the longer OAuth lifetime."""
        return TokenService.issue(
            user_id,
            email,
            expires_delta=timedelta(days=settings.jwt_oauth_session_expire_days),
            valid_after=valid_after,
        )

    @staticmethod
    def decode(token: str) -> dict:
        """
        Decode and validate a session token.

        Args:
            token: JWT token string

        Returns:
            Token payload dict

        Raises:
            JWTError: If token is invalid, expired or not a session token
        """
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
        if payload.get("type") != SESSION_TOKEN_TYPE or not payload.get("sub"):
            raise JWTError("Invalid token type")
        try:
            uuid.UUID(str(payload["sub"]))
        except ValueError:
            raise JWTError("Invalid token subject")
        return payload

    @staticmethod
    def subject(claims: dict) -> uuid.UUID:
        """Principal id from the ``sub`` claim"""
        return uuid.UUID(str(claims["sub"]))

    @staticmethod
    def expires_at(claims: dict) -> datetime:
        return from_epoch(int(claims["exp"]))

    @staticmethod
    def session_lifetime_seconds() -> int:
        return settings.jwt_session_expire_minutes * 60

    # ==================== Opaque one-time tokens ====================

    @staticmethod
    def generate_opaque_token(nbytes: int = 32) -> str:
        """Random hex token (``nbytes`` of entropy)"""
        return secrets.token_hex(nbytes)

    @staticmethod
    def hash_token(token: str) -> str:
        """
        Hash a token with SHA256 for storage.

        Args:
            token: Plain text token

        Returns:
            SHA256 hash as hex string
        """
        return hashlib.sha256(token.encode()).hexdigest()
