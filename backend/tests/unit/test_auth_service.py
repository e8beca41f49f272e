"""Unit tests for authentication service"""
import pytest
from datetime import datetime, timedelta

from app.error_handlers import (
    AccountInactiveError,
    AccountLockedError,
    AccountNotConfirmedError,
    AuthenticationError,
)
from app.services.auth_service import AuthService, INVALID_CREDENTIALS
from app.services.revocation_service import RevocationService
from app.services.token_service import TokenService

PASSWORD = "Abcd1234!"


class TestLogin:
    """Test password login"""

    def test_successful_login(self, db_session, test_user):
        """Test login issues a session token and records the login"""
        now = datetime.utcnow()
        grant = AuthService(db_session).login("ANA@example.com", PASSWORD, now=now)

        claims = TokenService.decode(grant.access_token)
        assert TokenService.subject(claims) == test_user.id
        assert grant.expires_in == 24 * 60 * 60
        assert grant.user.last_login == now
        assert grant.user.last_activity_at == now

    def test_wrong_password_and_unknown_email_look_the_same(self, db_session, test_user):
        """Test both failures carry the same message"""
        service = AuthService(db_session)

        with pytest.raises(AuthenticationError) as wrong_password:
            service.login(test_user.email, "Wrong1234!")
        with pytest.raises(AuthenticationError) as unknown_email:
            service.login("nobody@example.com", PASSWORD)

        assert wrong_password.value.message == INVALID_CREDENTIALS
        assert unknown_email.value.message == INVALID_CREDENTIALS

    def test_google_only_account_cannot_use_password(self, db_session, google_user):
        with pytest.raises(AuthenticationError):
            AuthService(db_session).login(google_user.email, PASSWORD)

    def test_inactive_account(self, db_session, make_user):
        make_user(is_active=False)
        with pytest.raises(AccountInactiveError):
            AuthService(db_session).login("ana@example.com", PASSWORD)

    def test_unconfirmed_account(self, db_session, make_user):
        make_user(is_confirmed=False)
        with pytest.raises(AccountNotConfirmedError):
            AuthService(db_session).login("ana@example.com", PASSWORD)

    def test_success_resets_failure_counter(self, db_session, test_user):
        service = AuthService(db_session)
        for _ in range(3):
            with pytest.raises(AuthenticationError):
                service.login(test_user.email, "Wrong1234!")

        service.login(test_user.email, PASSWORD)

        db_session.refresh(test_user)
        assert test_user.failed_login_attempts == 0


class TestLoginLockout:
    """Test lockout after repeated failures"""

    def test_sixth_attempt_refused_even_with_correct_password(self, db_session, test_user):
        service = AuthService(db_session)
        now = datetime.utcnow()

        for _ in range(5):
            with pytest.raises(AuthenticationError):
                service.login(test_user.email, "Wrong1234!", now=now)

        with pytest.raises(AccountLockedError) as exc_info:
            service.login(test_user.email, PASSWORD, now=now + timedelta(seconds=1))

        assert exc_info.value.locked_until == now + timedelta(minutes=15)
        assert exc_info.value.status_code == 403

    def test_login_allowed_after_lock_window(self, db_session, test_user):
        service = AuthService(db_session)
        now = datetime.utcnow()
        for _ in range(5):
            with pytest.raises(AuthenticationError):
                service.login(test_user.email, "Wrong1234!", now=now)

        grant = service.login(test_user.email, PASSWORD, now=now + timedelta(minutes=16))

        assert grant.access_token


class TestLogout:

    def test_logout_revokes_only_that_token(self, db_session, test_user):
        service = AuthService(db_session)
        first = service.login(test_user.email, PASSWORD).access_token
        second = service.login(test_user.email, PASSWORD).access_token

        service.logout(first, TokenService.decode(first))

        revocations = RevocationService(db_session)
        assert revocations.is_revoked(first) is True
        assert revocations.is_revoked(second) is False

    def test_logout_all_sets_watermark(self, db_session, test_user):
        service = AuthService(db_session)
        token = service.login(test_user.email, PASSWORD).access_token
        claims = TokenService.decode(token)

        service.logout(token, claims, all_sessions=True)

        assert RevocationService(db_session).is_revoked_by_watermark(test_user.id, claims["iat"]) is True

    def test_login_right_after_logout_all_is_valid(self, db_session, test_user):
        """Test a session opened in the same second as a global logout survives it"""
        service = AuthService(db_session)
        token = service.login(test_user.email, PASSWORD).access_token
        service.logout(token, TokenService.decode(token), all_sessions=True)

        fresh = TokenService.decode(service.login(test_user.email, PASSWORD).access_token)

        assert RevocationService(db_session).is_revoked_by_watermark(test_user.id, fresh["iat"]) is False


class TestRefresh:

    def test_refresh_revokes_presented_token(self, db_session, test_user):
        service = AuthService(db_session)
        token = service.login(test_user.email, PASSWORD).access_token

        grant = service.refresh(token, TokenService.decode(token), test_user)

        assert grant.access_token != token
        assert RevocationService(db_session).is_revoked(token) is True
        assert RevocationService(db_session).is_revoked(grant.access_token) is False
