"""
Brute-force lockout guard.

After ``max_failed_login_attempts`` consecutive failures an account is
locked for ``account_lockout_duration_minutes``. Expired locks are cleared
lazily by ``is_locked``; no scheduled job is needed for correctness.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.config import get_settings
from app.models import User
from app.utils.security import mask_email, sanitize_email

settings = get_settings()
logger = logging.getLogger(__name__)


@dataclass
class LockStatus:
    locked: bool
    until: Optional[datetime] = None


class LockoutService:
    """Failed-login counters and lockout windows, keyed by email"""

    def __init__(self, db: Session):
        self.db = db

    def record_failure(self, email: str, now: Optional[datetime] = None) -> None:
        """
        Count a failed login attempt.

        Unknown emails are accepted and ignored so callers follow the same
        path whether or not the account exists.

        Args:
            email: Identity the attempt was made for
            now: Attempt time (default: current time)
        """
        now = now or datetime.utcnow()
        email = sanitize_email(email)

        # Atomic increment; concurrent failures cannot lose a count
        updated = self.db.query(User).filter(User.email == email).update(
            {
                User.failed_login_attempts: User.failed_login_attempts + 1,
                User.last_failed_login_at: now,
            },
            synchronize_session=False,
        )
        if not updated:
            self.db.rollback()
            return

        attempts = self.db.query(User.failed_login_attempts).filter(User.email == email).scalar()
        if attempts >= settings.max_failed_login_attempts:
            locked_until = now + timedelta(minutes=settings.account_lockout_duration_minutes)
            self.db.query(User).filter(User.email == email).update(
                {User.locked_until: locked_until},
                synchronize_session=False,
            )
            logger.warning(
                f"Account locked after {attempts} failed attempts: {mask_email(email)}",
                extra={"locked_until": locked_until.isoformat()},
            )

        self.db.commit()

    def is_locked(self, email: str, now: Optional[datetime] = None) -> LockStatus:
        """
        Check whether an account is currently locked.

        A lock whose window has passed is cleared (counter and lock fields)
        as a side effect.

        Args:
            email: Identity to check
            now: Reference time (default: current time)

        Returns:
            LockStatus with the lock expiry when locked
        """
        now = now or datetime.utcnow()
        user = self.db.query(User).filter(User.email == sanitize_email(email)).first()

        if not user or not user.locked_until:
            return LockStatus(locked=False)

        if user.locked_until > now:
            return LockStatus(locked=True, until=user.locked_until)

        user.locked_until = None
        user.failed_login_attempts = 0
        self.db.commit()
        logger.info(f"Lockout window elapsed, account unlocked: {mask_email(user.email)}")
        return LockStatus(locked=False)

    def reset_on_success(self, email: str) -> int:
        """
        Zero the failure counter and clear any lock.

        Idempotent; only rows with something to reset are written.

        Returns:
            Number of rows updated (0 or 1)
        """
        updated = self.db.query(User).filter(
            User.email == sanitize_email(email),
            or_(User.failed_login_attempts > 0, User.locked_until.isnot(None)),
        ).update(
            {
                User.failed_login_attempts: 0,
                User.locked_until: None,
                User.last_failed_login_at: None,
            },
            synchronize_session=False,
        )
        self.db.commit()
        return updated
