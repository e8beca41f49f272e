"""
Test Configuration and Fixtures

Uses an in-memory SQLite database (one connection shared through StaticPool)
so the suite runs without external services. Settings are set through the
environment before any application module is imported.
"""

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET_KEY"] = "test-secret-key-for-jwt-signing-do-not-use-elsewhere"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["OAUTH_ENABLED"] = "false"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["SMTP_HOST"] = ""
os.environ["SMS_API_URL"] = ""

import uuid
from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from app.database import Base, SessionLocal


DEFAULT_PASSWORD = "Abcd1234!"


@pytest.fixture(scope="function")
def db_engine():
    """Fresh in-memory database per test"""
    # Import all models to register them with Base
    from app.models import User, RevokedToken, OneTimeToken  # noqa: F401

    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)

    # Sessions opened outside a request (background tasks, jobs) use the same database
    SessionLocal.configure(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(db_engine):
    """Create a test database session"""
    session = SessionLocal()

    yield session

    session.close()


@pytest.fixture
def make_user(db_session):
    """Factory for users; password accounts default to confirmed and active"""
    from app.models import User, UserRole
    from app.services.credential_service import CredentialService

    def _make_user(
        email="ana@example.com",
        password=DEFAULT_PASSWORD,
        name="Ana Torres",
        role=UserRole.CLIENT,
        security_question="Name of your first pet?",
        security_answer="Firulais",
        **overrides
    ):
        fields = dict(
            id=uuid.uuid4(),
            email=email,
            name=name,
            phone="5512345678",
            hashed_password=CredentialService.hash_password(password) if password else None,
            security_question=security_question,
            security_answer_hash=CredentialService.hash_answer(security_answer) if security_answer else None,
            role=role.value,
            is_confirmed=True,
            is_active=True,
            accepts_privacy_notice=True,
            last_activity_at=datetime.utcnow(),
        )
        fields.update(overrides)
        user = User(**fields)
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make_user


@pytest.fixture
def test_user(make_user):
    """A confirmed client with a password and a security question"""
    return make_user()


@pytest.fixture
def admin_user(make_user):
    from app.models import UserRole
    return make_user(email="admin@example.com", name="Salon Admin", role=UserRole.ADMIN)


@pytest.fixture
def google_user(make_user):
    """Google-only account: no password, no security question"""
    return make_user(
        email="google.user@gmail.com",
        name="Google User",
        password=None,
        security_question=None,
        security_answer=None,
        google_id="google-sub-123",
    )


@pytest.fixture
def client(db_session):
    """Create a test client with database dependency override"""
    from fastapi.testclient import TestClient
    from app.main import app
    from app.database import get_db
    from app.middleware.rate_limit import limiter

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    limiter.enabled = False
    client = TestClient(app)

    yield client

    app.dependency_overrides.clear()


@pytest.fixture
def login(client):
    """Log in through the API and return the session token"""
    def _login(email="ana@example.com", password=DEFAULT_PASSWORD):
        response = client.post("/api/auth/login", json={"email": email, "password": password})
        assert response.status_code == 200, response.text
        return response.json()["access_token"]

    return _login


@pytest.fixture
def auth_headers():
    """Build an Authorization header for a session token"""
    def _headers(token: str) -> dict:
        return {"Authorization": f"Bearer {token}"}

    return _headers
