"""Unit tests for the brute-force lockout guard"""
from datetime import datetime, timedelta

import pytest

from app.services.lockout_service import LockoutService


@pytest.mark.unit
class TestLockout:
    """Test lock after repeated failures"""

    def test_locks_on_fifth_failure(self, db_session, test_user):
        service = LockoutService(db_session)
        now = datetime.utcnow()

        for _ in range(4):
            service.record_failure(test_user.email, now=now)
        assert service.is_locked(test_user.email, now=now).locked is False

        service.record_failure(test_user.email, now=now)
        status = service.is_locked(test_user.email, now=now)

        assert status.locked is True
        assert status.until == now + timedelta(minutes=15)

    def test_lock_clears_after_window(self, db_session, test_user):
        service = LockoutService(db_session)
        now = datetime.utcnow()
        for _ in range(5):
            service.record_failure(test_user.email, now=now)

        assert service.is_locked(test_user.email, now=now + timedelta(minutes=14)).locked is True
        assert service.is_locked(test_user.email, now=now + timedelta(minutes=15, seconds=1)).locked is False

        db_session.refresh(test_user)
        assert test_user.failed_login_attempts == 0
        assert test_user.locked_until is None

    def test_email_lookup_is_case_insensitive(self, db_session, test_user):
        service = LockoutService(db_session)
        for _ in range(5):
            service.record_failure("ANA@example.com")

        assert service.is_locked("ana@EXAMPLE.com").locked is True

    def test_unknown_email_is_ignored(self, db_session):
        service = LockoutService(db_session)
        service.record_failure("nobody@example.com")

        assert service.is_locked("nobody@example.com").locked is False

    def test_reset_on_success(self, db_session, test_user):
        service = LockoutService(db_session)
        for _ in range(3):
            service.record_failure(test_user.email)

        assert service.reset_on_success(test_user.email) == 1
        db_session.refresh(test_user)
        assert test_user.failed_login_attempts == 0
        assert test_user.last_failed_login_at is None

        # Nothing left to reset
        assert service.reset_on_success(test_user.email) == 0
