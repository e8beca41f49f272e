"""
Background job scheduler for session housekeeping

This module handles scheduled tasks like:
- Purging revocation entries whose tokens have expired anyway
- Deleting expired and used one-time tokens

Neither job is needed for correctness; lookups already ignore stale rows.
"""
import logging
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from typing import Optional

from app.database import SessionLocal
from app.services.one_time_token_service import OneTimeTokenService
from app.services.revocation_service import RevocationService
from app.config import get_settings

logger = logging.getLogger(__name__)


class SessionMaintenanceScheduler:
    """Scheduler for periodic token cleanup"""

    def __init__(self):
        self.scheduler = BackgroundScheduler()
        self.settings = get_settings()
        self._started = False

    @property
    def running(self) -> bool:
        return self._started

    def start(self):
        """Start the scheduler"""
        if self._started:
            logger.warning("Scheduler already started")
            return

        interval = IntervalTrigger(minutes=self.settings.cleanup_interval_minutes)

        self.scheduler.add_job(
            func=self._cleanup_revoked_tokens_job,
            trigger=interval,
            id='cleanup_revoked_tokens',
            name='Purge expired revocation entries',
            replace_existing=True
        )

        self.scheduler.add_job(
            func=self._cleanup_one_time_tokens_job,
            trigger=interval,
            id='cleanup_one_time_tokens',
            name='Delete expired or used one-time tokens',
            replace_existing=True
        )

        self.scheduler.start()
        self._started = True
        logger.info("Session maintenance scheduler started")
        logger.info("Scheduled jobs: %s", [job.id for job in self.scheduler.get_jobs()])

    def stop(self):
        """Stop the scheduler"""
        if not self._started:
            return

        self.scheduler.shutdown(wait=False)
        self._started = False
        logger.info("Session maintenance scheduler stopped")

    def _cleanup_revoked_tokens_job(self):
        db = SessionLocal()
        try:
            RevocationService(db).cleanup_expired()
        except Exception as e:
            db.rollback()
            logger.error(f"Error in revoked token cleanup: {str(e)}", exc_info=True)
        finally:
            db.close()

    def _cleanup_one_time_tokens_job(self):
        db = SessionLocal()
        try:
            OneTimeTokenService(db).cleanup_expired()
        except Exception as e:
            db.rollback()
            logger.error(f"Error in one-time token cleanup: {str(e)}", exc_info=True)
        finally:
            db.close()


# Global scheduler instance
_scheduler: Optional[SessionMaintenanceScheduler] = None


def get_scheduler() -> SessionMaintenanceScheduler:
    """Get or create the global scheduler instance"""
    global _scheduler
    if _scheduler is None:
        _scheduler = SessionMaintenanceScheduler()
    return _scheduler


def start_scheduler():
    """Start the global scheduler"""
    scheduler = get_scheduler()
    scheduler.start()


def stop_scheduler():
    """Stop the global scheduler"""
    global _scheduler
    if _scheduler is not None:
        _scheduler.stop()
        _scheduler = None
