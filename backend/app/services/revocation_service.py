"""
Revocation registry for session tokens.

Two independent mechanisms:
- Single-token revocation (logout): a row per revoked token, keyed by the
  token's SHA256, kept until the token's own expiry.
- Global logout watermark (logout everywhere, password change): an epoch
  timestamp on the user; any token with ``iat <= watermark`` is dead.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import case
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models import RevokedToken, User
from app.services.token_service import TokenService, to_epoch

logger = logging.getLogger(__name__)


class RevocationService:
    """Service for token revocation checks and bookkeeping"""

    def __init__(self, db: Session):
        self.db = db

    def revoke(self, token: str, expires_at: datetime, user_id=None) -> None:
        """
        Record a token as revoked until ``expires_at``.

        Idempotent: revoking an already revoked token keeps the later expiry.

        Args:
            token: Raw session token
            expires_at: When the token would have expired on its own
            user_id: Owning principal, kept for audit
        """
        token_hash = TokenService.hash_token(token)

        entry = self.db.query(RevokedToken).filter(RevokedToken.token_hash == token_hash).first()
        if entry:
            if expires_at > entry.expires_at:
                entry.expires_at = expires_at
                self.db.commit()
            return

        self.db.add(RevokedToken(token_hash=token_hash, user_id=user_id, expires_at=expires_at))
        try:
            self.db.commit()
        except IntegrityError:
            # Concurrent logout of the same token already inserted the row
            self.db.rollback()
            logger.debug("Token already revoked by a concurrent request")

    def is_revoked(self, token: str, now: Optional[datetime] = None) -> bool:
        """
        Check whether a token has been individually revoked.

        Entries past their expiry count as absent and are purged on read.

        Args:
            token: Raw session token
            now: Reference time (default: current time)

        Returns:
            True if a live revocation entry exists
        """
        now = now or datetime.utcnow()
        token_hash = TokenService.hash_token(token)

        entry = self.db.query(RevokedToken).filter(RevokedToken.token_hash == token_hash).first()
        if not entry:
            return False

        if entry.expires_at <= now:
            self.db.delete(entry)
            self.db.commit()
            return False

        return True

    def revoke_all_for_principal(self, user_id, now: Optional[datetime] = None) -> Optional[int]:
        """
        Invalidate every token issued to a principal up to now.

        A session opened in the same second as an earlier global logout carries
        ``iat = watermark + 1``. A repeat in that second therefore moves the
        watermark one step past the stored value instead of back to ``now``.

        Args:
            user_id: Principal UUID
            now: Watermark time (default: current time)

        Returns:
            The stored watermark (epoch seconds), or None if the principal is unknown
        """
        now_epoch = to_epoch(now or datetime.utcnow())
        updated = self.db.query(User).filter(User.id == user_id).update(
            {
                User.tokens_valid_after: case(
                    (User.tokens_valid_after >= now_epoch, User.tokens_valid_after + 1),
                    else_=now_epoch,
                )
            },
            synchronize_session="fetch",
        )
        self.db.commit()

        if not updated:
            return None

        watermark = self.db.query(User.tokens_valid_after).filter(User.id == user_id).scalar()

        logger.info("Global logout watermark set", extra={"user_id": str(user_id), "watermark": watermark})
        return watermark

    def is_revoked_by_watermark(self, user_id, token_issued_at: int) -> bool:
        """True iff a watermark exists and the token was issued at or before it."""
        watermark = self.db.query(User.tokens_valid_after).filter(User.id == user_id).scalar()
        return watermark is not None and int(token_issued_at) <= watermark

    def cleanup_expired(self, now: Optional[datetime] = None) -> int:
        """
        Delete revocation entries whose tokens have expired anyway.

        Returns:
            Number of entries deleted
        """
        now = now or datetime.utcnow()
        result = self.db.query(RevokedToken).filter(
            RevokedToken.expires_at < now
        ).delete(synchronize_session=False)

        self.db.commit()
        logger.info(f"Cleaned up {result} expired revoked tokens")

        return result
