"""Unit tests for OAuthService (oauth_service.py)"""
import pytest
from datetime import datetime, timedelta
from unittest.mock import MagicMock, patch, AsyncMock

import httpx

from app.models import OneTimeToken
from app.services.oauth_service import (
    OAuthCodeExchange,
    OAuthService,
    OAuthProvider,
    OAuthUserInfo,
    OAuthError,
)
from app.services.token_service import TokenService


def _user_info(**overrides):
    fields = dict(
        email="new.client@gmail.com",
        name="New Client",
        given_name="New",
        family_name="Client",
        picture_url="https://lh3.googleusercontent.com/photo.jpg",
        provider=OAuthProvider.GOOGLE,
        provider_user_id="google-sub-999",
    )
    fields.update(overrides)
    return OAuthUserInfo(**fields)


def _mock_async_client(MockClient, method, response):
    mock_client = AsyncMock()
    MockClient.return_value.__aenter__ = AsyncMock(return_value=mock_client)
    MockClient.return_value.__aexit__ = AsyncMock(return_value=False)
    setattr(mock_client, method, AsyncMock(return_value=response))
    return mock_client


@pytest.fixture
def service(db_session):
    return OAuthService(db_session)


@pytest.mark.unit
class TestProviderConfiguration:
    """Test OAuth provider configuration checks"""

    @patch("app.services.oauth_service.settings")
    def test_google_configured(self, mock_settings):
        """Test Google provider is reported as configured"""
        mock_settings.oauth_enabled = True
        mock_settings.google_client_id = "google-client-id"
        mock_settings.google_client_secret = "google-client-secret"

        assert OAuthService.is_provider_configured(OAuthProvider.GOOGLE) is True
        assert OAuthService.get_configured_providers() == ["google"]

    @patch("app.services.oauth_service.settings")
    def test_google_not_configured(self, mock_settings):
        """Test Google provider not configured when missing credentials"""
        mock_settings.oauth_enabled = True
        mock_settings.google_client_id = None
        mock_settings.google_client_secret = None

        assert OAuthService.is_provider_configured(OAuthProvider.GOOGLE) is False

    @patch("app.services.oauth_service.settings")
    def test_oauth_disabled(self, mock_settings):
        """Test all providers report not configured when OAuth disabled"""
        mock_settings.oauth_enabled = False
        mock_settings.google_client_id = "google-client-id"
        mock_settings.google_client_secret = "google-client-secret"

        assert OAuthService.get_configured_providers() == []


@pytest.mark.unit
class TestAuthUrl:

    @patch("app.services.oauth_service.settings")
    def test_google_auth_url(self, mock_settings, service):
        mock_settings.google_client_id = "google-client-id"
        mock_settings.backend_url = "https://api.salon.example"

        url = service.get_auth_url(OAuthProvider.GOOGLE, "state-123")

        assert url.startswith(OAuthService.GOOGLE_AUTH_URL)
        assert "client_id=google-client-id" in url
        assert "state=state-123" in url
        assert "scope=openid+email+profile" in url
        assert "redirect_uri=https%3A%2F%2Fapi.salon.example%2Fapi%2Fauth%2Foauth%2Fgoogle%2Fcallback" in url

    def test_state_tokens_are_unique(self, service):
        assert service.generate_state_token() != service.generate_state_token()


@pytest.mark.unit
class TestProviderCalls:
    """Test token exchange and userinfo requests"""

    @pytest.mark.asyncio
    async def test_exchange_code_success(self, service):
        response = MagicMock(status_code=200)
        response.json.return_value = {"access_token": "google-access"}

        with patch("app.services.oauth_service.httpx.AsyncClient") as MockClient:
            mock_client = _mock_async_client(MockClient, "post", response)

            tokens = await service.exchange_code_for_tokens(OAuthProvider.GOOGLE, "auth-code")

        assert tokens["access_token"] == "google-access"
        assert mock_client.post.call_args.kwargs["data"]["code"] == "auth-code"

    @pytest.mark.asyncio
    async def test_exchange_code_failure(self, service):
        with patch("app.services.oauth_service.httpx.AsyncClient") as MockClient:
            _mock_async_client(MockClient, "post", MagicMock(status_code=400))

            with pytest.raises(OAuthError, match="exchange"):
                await service.exchange_code_for_tokens(OAuthProvider.GOOGLE, "bad-code")

    @pytest.mark.asyncio
    async def test_exchange_code_network_error(self, service):
        with patch("app.services.oauth_service.httpx.AsyncClient") as MockClient:
            mock_client = _mock_async_client(MockClient, "post", None)
            mock_client.post.side_effect = httpx.ConnectError("refused")

            with pytest.raises(OAuthError, match="unreachable"):
                await service.exchange_code_for_tokens(OAuthProvider.GOOGLE, "auth-code")

    @pytest.mark.asyncio
    async def test_user_info(self, service):
        response = MagicMock(status_code=200)
        response.json.return_value = {
            "sub": "google-sub-999",
            "email": "new.client@gmail.com",
            "email_verified": True,
            "name": "New Client",
            "picture": "https://lh3.googleusercontent.com/photo.jpg",
        }

        with patch("app.services.oauth_service.httpx.AsyncClient") as MockClient:
            _mock_async_client(MockClient, "get", response)

            info = await service.get_user_info(OAuthProvider.GOOGLE, "google-access")

        assert info.provider_user_id == "google-sub-999"
        assert info.email == "new.client@gmail.com"
        assert info.picture_url.endswith("photo.jpg")

    @pytest.mark.asyncio
    async def test_unverified_email_rejected(self, service):
        response = MagicMock(status_code=200)
        response.json.return_value = {"sub": "x", "email": "x@gmail.com", "email_verified": False}

        with patch("app.services.oauth_service.httpx.AsyncClient") as MockClient:
            _mock_async_client(MockClient, "get", response)

            with pytest.raises(OAuthError, match="not verified"):
                await service.get_user_info(OAuthProvider.GOOGLE, "google-access")


@pytest.mark.unit
class TestFindOrCreateUser:

    def test_creates_confirmed_client_without_password(self, service):
        user = service.find_or_create_user(_user_info())

        assert user.email == "new.client@gmail.com"
        assert user.google_id == "google-sub-999"
        assert user.hashed_password is None
        assert user.security_question is None
        assert user.is_confirmed is True
        assert user.role == "client"
        assert user.last_activity_at is not None

    def test_name_falls_back_to_email(self, service):
        user = service.find_or_create_user(_user_info(name=None, given_name=None, family_name=None))
        assert user.name == "new.client"

    def test_links_existing_password_account(self, service, make_user):
        existing = make_user(email="new.client@gmail.com", is_confirmed=False)

        user = service.find_or_create_user(_user_info())

        assert user.id == existing.id
        assert user.google_id == "google-sub-999"
        assert user.is_confirmed is True
        assert user.hashed_password is not None

    def test_returning_user_found_by_google_id(self, service, google_user):
        user = service.find_or_create_user(_user_info(email="renamed@gmail.com", provider_user_id="google-sub-123"))

        assert user.id == google_user.id
        assert user.email == "google.user@gmail.com"

    @pytest.mark.asyncio
    async def test_authenticate_issues_seven_day_session(self, service):
        with patch.object(service, "exchange_code_for_tokens", AsyncMock(return_value={"access_token": "a"})), \
             patch.object(service, "get_user_info", AsyncMock(return_value=_user_info())):
            user, token = await service.authenticate(OAuthProvider.GOOGLE, "auth-code")

        claims = TokenService.decode(token)
        assert TokenService.subject(claims) == user.id
        assert claims["exp"] - claims["iat"] == 7 * 24 * 60 * 60

    @pytest.mark.asyncio
    async def test_authenticate_inactive_user(self, service, make_user):
        make_user(email="new.client@gmail.com", is_active=False)

        with patch.object(service, "exchange_code_for_tokens", AsyncMock(return_value={"access_token": "a"})), \
             patch.object(service, "get_user_info", AsyncMock(return_value=_user_info())):
            with pytest.raises(OAuthError, match="inactive"):
                await service.authenticate(OAuthProvider.GOOGLE, "auth-code")

    @pytest.mark.asyncio
    async def test_authenticate_without_access_token(self, service):
        with patch.object(service, "exchange_code_for_tokens", AsyncMock(return_value={})):
            with pytest.raises(OAuthError, match="No access token"):
                await service.authenticate(OAuthProvider.GOOGLE, "auth-code")


@pytest.mark.unit
class TestCodeExchange:
    """Test the single-use code standing in for a session token"""

    def test_code_exchanged_once(self, db_session, google_user):
        exchange = OAuthCodeExchange(db_session)
        code = exchange.issue_code(google_user, "session-token")

        user, token = exchange.exchange(code)
        assert user.id == google_user.id
        assert token == "session-token"

        assert exchange.exchange(code) is None

    def test_session_token_cleared_after_use(self, db_session, google_user):
        exchange = OAuthCodeExchange(db_session)
        exchange.exchange(exchange.issue_code(google_user, "session-token"))

        db_session.expire_all()
        assert db_session.query(OneTimeToken).one().payload is None

    def test_expired_code_deleted(self, db_session, google_user):
        exchange = OAuthCodeExchange(db_session)
        now = datetime.utcnow()
        code = exchange.issue_code(google_user, "session-token", now=now)

        assert exchange.exchange(code, now=now + timedelta(minutes=6)) is None
        assert db_session.query(OneTimeToken).count() == 0

    def test_unknown_code(self, db_session):
        assert OAuthCodeExchange(db_session).exchange("nope") is None
