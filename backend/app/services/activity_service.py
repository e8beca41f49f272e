"""
Inactivity monitor.

Tracks the last time each principal made an authenticated request. Sessions
idle for longer than ``inactivity_timeout_minutes`` are rejected even when
the token itself is still valid.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import get_settings
from app.database import SessionLocal
from app.models import User

settings = get_settings()
logger = logging.getLogger(__name__)


class ActivityService:
    """Service for last-activity tracking"""

    def __init__(self, db: Session):
        self.db = db

    def touch(self, user_id, now: Optional[datetime] = None) -> None:
        """Set last activity to ``now`` and commit."""
        self.db.query(User).filter(User.id == user_id).update(
            {User.last_activity_at: now or datetime.utcnow()},
            synchronize_session=False,
        )
        self.db.commit()

    def is_inactive(
        self,
        user_id,
        timeout_minutes: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        """
        Check whether a principal has been idle beyond the timeout.

        A principal with no recorded activity is treated as active and its
        record is initialised. Storage errors fail open: the error is logged
        and the principal is treated as active.

        Args:
            user_id: Principal UUID
            timeout_minutes: Idle limit (default: inactivity_timeout_minutes)
            now: Reference time (default: current time)

        Returns:
            True if idle for longer than the timeout, or the principal does not exist
        """
        now = now or datetime.utcnow()
        timeout = timedelta(minutes=timeout_minutes or settings.inactivity_timeout_minutes)

        try:
            user = self.db.query(User).filter(User.id == user_id).first()
            if not user:
                return True

            if user.last_activity_at is None:
                user.last_activity_at = now
                self.db.commit()
                return False

            return now - user.last_activity_at > timeout

        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Inactivity check failed for user {user_id}, allowing request: {e}")
            return False

    @staticmethod
    def record_activity(user_id) -> None:
        """
        Background task: update last activity in a dedicated session.

        Runs after the response has been sent. Errors are logged and never
        raised, so a failed update cannot affect the request.
        """
        db = SessionLocal()
        try:
            ActivityService(db).touch(user_id)
        except Exception as e:
            db.rollback()
            logger.warning(f"Failed to record activity for user {user_id}: {e}")
        finally:
            db.close()
