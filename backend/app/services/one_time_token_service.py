"""
Single-use, time-boxed tokens.

Shared by both password-recovery flows and the OAuth code exchange. Tokens
are random hex strings; only their SHA256 is stored. Consumption is one
conditional UPDATE, so two concurrent requests cannot both use a token.
"""

import logging
from datetime import datetime, timedelta
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from app.models import OneTimeToken, TokenPurpose, User
from app.services.token_service import TokenService

logger = logging.getLogger(__name__)


class OneTimeTokenService:
    """Issue, look up and consume one-time tokens"""

    def __init__(self, db: Session):
        self.db = db

    def issue(
        self,
        user: User,
        purpose: TokenPurpose,
        ttl: timedelta,
        payload: Optional[str] = None,
        request_ip: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> str:
        """
        Create a token for ``user`` and commit.

        Earlier unused tokens of the same purpose are invalidated first, so at
        most one is live per user and purpose.

        Args:
            user: Owning principal
            purpose: What the token unlocks
            ttl: Validity window
            payload: Opaque value handed back on consumption
            request_ip: Requester address for the audit trail
            now: Issue time (default: current time)

        Returns:
            The raw token (shown once, never stored)
        """
        now = now or datetime.utcnow()
        self.invalidate_existing(user.id, purpose, now=now)

        token = TokenService.generate_opaque_token()
        self.db.add(OneTimeToken(
            user_id=user.id,
            token_hash=TokenService.hash_token(token),
            purpose=purpose.value,
            email=user.email,
            payload=payload,
            expires_at=now + ttl,
            request_ip=request_ip,
            created_at=now,
        ))
        self.db.commit()

        logger.debug(f"Issued {purpose.value} token for user {user.id}")
        return token

    def find_valid(
        self,
        token: str,
        purposes: Iterable[TokenPurpose],
        email: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Optional[OneTimeToken]:
        """
        Look up an unused, unexpired token without consuming it.

        Returns:
            The token row, or None when missing, expired, used, of another
            purpose or issued for a different email
        """
        now = now or datetime.utcnow()
        query = self.db.query(OneTimeToken).filter(
            OneTimeToken.token_hash == TokenService.hash_token(token),
            OneTimeToken.purpose.in_([p.value for p in purposes]),
            OneTimeToken.used == False,
            OneTimeToken.expires_at > now,
        )
        if email is not None:
            query = query.filter(OneTimeToken.email == email)
        return query.first()

    def find_any(self, token: str, purpose: TokenPurpose) -> Optional[OneTimeToken]:
        """Look up a token regardless of state"""
        return self.db.query(OneTimeToken).filter(
            OneTimeToken.token_hash == TokenService.hash_token(token),
            OneTimeToken.purpose == purpose.value,
        ).first()

    def consume(self, record: OneTimeToken, now: Optional[datetime] = None) -> bool:
        """
        Mark a token used with a single conditional UPDATE.

        Does not commit; the caller commits together with the change the
        token authorises.

        Returns:
            True if this call consumed the token, False if it was already used
            or has expired
        """
        now = now or datetime.utcnow()
        consumed = self.db.query(OneTimeToken).filter(
            OneTimeToken.id == record.id,
            OneTimeToken.used == False,
            OneTimeToken.expires_at > now,
        ).update(
            {
                OneTimeToken.used: True,
                OneTimeToken.used_at: now,
                OneTimeToken.payload: None,
            },
            synchronize_session=False,
        )
        return consumed == 1

    def invalidate_existing(self, user_id, purpose: TokenPurpose, now: Optional[datetime] = None) -> int:
        """
        Invalidate all unused tokens of one purpose for a user.

        Returns:
            Number of tokens invalidated
        """
        count = self.db.query(OneTimeToken).filter(
            OneTimeToken.user_id == user_id,
            OneTimeToken.purpose == purpose.value,
            OneTimeToken.used == False,
        ).update(
            {
                OneTimeToken.used: True,
                OneTimeToken.used_at: now or datetime.utcnow(),
                OneTimeToken.payload: None,
            },
            synchronize_session=False,
        )

        if count > 0:
            logger.debug(f"Invalidated {count} existing {purpose.value} tokens for user {user_id}")

        return count

    def delete(self, record: OneTimeToken) -> None:
        self.db.delete(record)
        self.db.commit()

    def cleanup_expired(self, now: Optional[datetime] = None) -> int:
        """
        Delete expired and used tokens.

        Returns:
            Number of tokens deleted
        """
        now = now or datetime.utcnow()
        result = self.db.query(OneTimeToken).filter(
            (OneTimeToken.expires_at < now) | (OneTimeToken.used == True)
        ).delete(synchronize_session=False)

        self.db.commit()
        logger.info(f"Cleaned up {result} expired or used one-time tokens")

        return result
