"""Integration tests for authentication API routes."""
import pytest
from datetime import datetime, timedelta
from unittest.mock import patch

from app.models import User
from app.services.registration_service import RegistrationService

PASSWORD = "Abcd1234!"


def _registration_body(**overrides):
    body = {
        "name": "Luis Perez",
        "email": "luis@example.com",
        "phone": "5587654321",
        "password": "Sal0n!Secure",
        "security_question": "Favourite flower?",
        "security_answer": "Gardenia",
        "accepts_privacy_notice": True,
    }
    body.update(overrides)
    return body


@pytest.mark.integration
class TestLogin:
    """Test POST /api/auth/login"""

    def test_login_success(self, client, test_user):
        response = client.post("/api/auth/login", json={"email": "ANA@example.com", "password": PASSWORD})

        assert response.status_code == 200
        data = response.json()
        assert data["token_type"] == "bearer"
        assert data["expires_in"] == 86400
        assert data["user"]["email"] == "ana@example.com"
        assert data["user"]["role"] == "client"
        assert "hashed_password" not in data["user"]

    def test_wrong_password(self, client, test_user):
        response = client.post("/api/auth/login", json={"email": test_user.email, "password": "Wrong1234!"})

        assert response.status_code == 401
        assert response.json()["error"] == "AUTHENTICATION_ERROR"
        assert response.json()["message"] == "Incorrect email or password"
        assert response.headers["WWW-Authenticate"] == "Bearer"

    def test_unknown_email_same_response(self, client):
        response = client.post("/api/auth/login", json={"email": "nobody@example.com", "password": PASSWORD})

        assert response.status_code == 401
        assert response.json()["message"] == "Incorrect email or password"

    def test_malformed_body(self, client):
        response = client.post("/api/auth/login", json={"email": "not-an-email", "password": PASSWORD})

        assert response.status_code == 422
        assert response.json()["error"] == "VALIDATION_ERROR"
        assert PASSWORD not in response.text

    def test_unconfirmed_account(self, client, make_user):
        make_user(is_confirmed=False)

        response = client.post("/api/auth/login", json={"email": "ana@example.com", "password": PASSWORD})

        assert response.status_code == 403
        assert response.json()["error"] == "ACCOUNT_NOT_CONFIRMED"

    def test_inactive_account(self, client, make_user):
        make_user(is_active=False)

        response = client.post("/api/auth/login", json={"email": "ana@example.com", "password": PASSWORD})

        assert response.status_code == 403
        assert response.json()["error"] == "ACCOUNT_INACTIVE"


@pytest.mark.integration
class TestLockout:
    """Test lock after five failed logins"""

    def test_sixth_attempt_locked(self, client, test_user):
        for _ in range(5):
            response = client.post("/api/auth/login", json={"email": test_user.email, "password": "Wrong1234!"})
            assert response.status_code == 401

        response = client.post("/api/auth/login", json={"email": test_user.email, "password": PASSWORD})

        assert response.status_code == 403
        data = response.json()
        assert data["error"] == "ACCOUNT_LOCKED"
        assert "locked_until" in data

    def test_login_after_lock_elapses(self, client, db_session, test_user):
        for _ in range(5):
            client.post("/api/auth/login", json={"email": test_user.email, "password": "Wrong1234!"})

        user = db_session.query(User).filter(User.id == test_user.id).one()
        user.locked_until = datetime.utcnow() - timedelta(seconds=1)
        db_session.commit()

        response = client.post("/api/auth/login", json={"email": test_user.email, "password": PASSWORD})

        assert response.status_code == 200


@pytest.mark.integration
class TestSessions:
    """Test logout, refresh and the session check chain"""

    def test_me(self, client, test_user, login, auth_headers):
        response = client.get("/api/auth/me", headers=auth_headers(login()))

        assert response.status_code == 200
        data = response.json()
        assert data["email"] == "ana@example.com"
        assert data["has_security_question"] is True
        assert data["google_linked"] is False

    def test_missing_token(self, client):
        response = client.get("/api/auth/me")
        assert response.status_code == 401

    def test_garbage_token(self, client, auth_headers):
        response = client.get("/api/auth/me", headers=auth_headers("not.a.jwt"))

        assert response.status_code == 401
        assert response.json()["message"] == "Session expired or revoked. Please sign in again."

    def test_logout_revokes_token(self, client, test_user, login, auth_headers):
        first = login()
        second = login()

        response = client.post("/api/auth/logout", headers=auth_headers(first))
        assert response.status_code == 200
        assert response.json()["message"] == "Logged out successfully"

        assert client.get("/api/auth/me", headers=auth_headers(first)).status_code == 401
        assert client.get("/api/auth/me", headers=auth_headers(second)).status_code == 200

    def test_logout_all_sessions(self, client, test_user, login, auth_headers):
        first = login()
        second = login()

        response = client.post("/api/auth/logout", json={"all": True}, headers=auth_headers(first))
        assert response.json()["message"] == "Logged out from all sessions"

        assert client.get("/api/auth/me", headers=auth_headers(first)).status_code == 401
        assert client.get("/api/auth/me", headers=auth_headers(second)).status_code == 401

        # A new login right after is not caught by the watermark
        third = login()
        assert client.get("/api/auth/me", headers=auth_headers(third)).status_code == 200

    def test_refresh(self, client, test_user, login, auth_headers):
        token = login()

        response = client.post("/api/auth/refresh", headers=auth_headers(token))

        assert response.status_code == 200
        new_token = response.json()["access_token"]
        assert new_token != token
        assert client.get("/api/auth/me", headers=auth_headers(token)).status_code == 401
        assert client.get("/api/auth/me", headers=auth_headers(new_token)).status_code == 200

    def test_idle_session_rejected(self, client, db_session, test_user, login, auth_headers):
        token = login()

        user = db_session.query(User).filter(User.id == test_user.id).one()
        user.last_activity_at = datetime.utcnow() - timedelta(minutes=16)
        db_session.commit()

        response = client.get("/api/auth/me", headers=auth_headers(token))

        assert response.status_code == 401
        assert response.json()["message"] == "Session expired or revoked. Please sign in again."

    def test_request_records_activity(self, client, db_session, test_user, login, auth_headers):
        token = login()
        user = db_session.query(User).filter(User.id == test_user.id).one()
        user.last_activity_at = datetime.utcnow() - timedelta(minutes=10)
        db_session.commit()

        assert client.get("/api/auth/me", headers=auth_headers(token)).status_code == 200

        db_session.expire_all()
        user = db_session.query(User).filter(User.id == test_user.id).one()
        assert datetime.utcnow() - user.last_activity_at < timedelta(minutes=1)

    def test_deactivated_account_loses_session(self, client, db_session, test_user, login, auth_headers):
        token = login()

        user = db_session.query(User).filter(User.id == test_user.id).one()
        user.is_active = False
        db_session.commit()

        response = client.get("/api/auth/me", headers=auth_headers(token))

        assert response.status_code == 403
        assert response.json()["error"] == "ACCOUNT_INACTIVE"


@pytest.mark.integration
class TestRegistration:
    """Test registration and OTP confirmation"""

    def test_register_verify_login(self, client):
        with patch.object(RegistrationService, "_generate_otp", return_value="482915"):
            response = client.post("/api/auth/register", json=_registration_body())

        assert response.status_code == 201
        data = response.json()
        assert data["otp_channel"] == "email"
        # No SMTP server in tests
        assert data["notification_sent"] is False

        login_body = {"email": "luis@example.com", "password": "Sal0n!Secure"}
        assert client.post("/api/auth/login", json=login_body).status_code == 403

        response = client.post("/api/auth/verify-otp", json={"email": "luis@example.com", "code": "482915"})
        assert response.status_code == 200

        assert client.post("/api/auth/login", json=login_body).status_code == 200

    def test_duplicate_email(self, client, test_user):
        response = client.post("/api/auth/register", json=_registration_body(email="ana@example.com"))

        assert response.status_code == 409
        assert response.json()["error"] == "CONFLICT"

    def test_privacy_notice_required(self, client):
        response = client.post("/api/auth/register", json=_registration_body(accepts_privacy_notice=False))
        assert response.status_code == 422

    def test_name_too_long_once_escaped(self, client, db_session):
        response = client.post("/api/auth/register", json=_registration_body(name="A&" * 50))

        assert response.status_code == 422
        assert response.json()["error"] == "VALIDATION_ERROR"
        assert db_session.query(User).filter(User.email == "luis@example.com").count() == 0

    def test_weak_password(self, client):
        response = client.post("/api/auth/register", json=_registration_body(password="alllower1!"))

        assert response.status_code == 422
        assert "uppercase" in response.json()["message"]

    def test_name_is_escaped(self, client, db_session):
        client.post("/api/auth/register", json=_registration_body(name="<b>Luis</b>"))

        user = db_session.query(User).filter(User.email == "luis@example.com").one()
        assert user.name == "&lt;b&gt;Luis&lt;&#x2F;b&gt;"

    def test_expired_code_then_resend(self, client, db_session):
        with patch.object(RegistrationService, "_generate_otp", side_effect=["111111", "222222"]):
            client.post("/api/auth/register", json=_registration_body())

            user = db_session.query(User).filter(User.email == "luis@example.com").one()
            user.otp_expires_at = datetime.utcnow() - timedelta(minutes=1)
            db_session.commit()

            response = client.post("/api/auth/verify-otp", json={"email": "luis@example.com", "code": "111111"})
            assert response.status_code == 422
            assert "expired" in response.json()["message"]

            response = client.post("/api/auth/resend-otp", json={"email": "luis@example.com"})
            assert response.status_code == 200
            assert response.json()["notification_sent"] is False

        response = client.post("/api/auth/verify-otp", json={"email": "luis@example.com", "code": "222222"})
        assert response.status_code == 200

    def test_code_must_be_six_digits(self, client):
        response = client.post("/api/auth/verify-otp", json={"email": "luis@example.com", "code": "12ab56"})
        assert response.status_code == 422


@pytest.mark.integration
class TestSecurityMiddleware:

    def test_security_headers(self, client, test_user):
        response = client.post("/api/auth/login", json={"email": test_user.email, "password": PASSWORD})

        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"
        assert response.headers["Referrer-Policy"] == "no-referrer"
        assert "no-store" in response.headers["Cache-Control"]
        assert "X-Request-ID" in response.headers

    def test_csrf_token_endpoint(self, client):
        response = client.get("/api/auth/csrf-token")

        assert response.status_code == 200
        assert "csrf_token=" in response.headers["set-cookie"]
        assert response.json()["csrf_token"] in response.headers["set-cookie"]

    def test_csrf_mismatch_rejected(self, client, test_user):
        body = {"email": test_user.email, "password": PASSWORD}
        cookie = {"Cookie": "csrf_token=cookie-value"}

        response = client.post("/api/auth/login", json=body, headers=cookie)
        assert response.status_code == 403
        assert response.json()["error"] == "CSRF_FAILED"

        response = client.post("/api/auth/login", json=body, headers={**cookie, "X-CSRF-Token": "cookie-value"})
        assert response.status_code == 200

    def test_bearer_clients_without_cookie_not_checked(self, client, test_user):
        response = client.post("/api/auth/login", json={"email": test_user.email, "password": PASSWORD})
        assert response.status_code == 200

    def test_oversized_body_rejected(self, client):
        response = client.post(
            "/api/auth/login",
            content=b"{}",
            headers={"Content-Type": "application/json", "Content-Length": str(2 * 1024 * 1024)},
        )
        assert response.status_code == 413

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
