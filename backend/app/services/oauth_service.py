"""
OAuth Service for Google sign-in.

OAuth Flow:
1. Generate auth URL -> redirect user to Google (state kept in Redis)
2. Google redirects back with code
3. Exchange code for tokens
4. Get user info from Google
5. Find, link or create the local user
6. Issue a session token and park it behind a short-lived exchange code
7. Frontend trades the exchange code for the session token

The session token never appears in a URL; only the single-use exchange code
does.
"""

import logging
import secrets
import httpx
from datetime import datetime, timedelta
from typing import Optional, Tuple, Dict, Any
from dataclasses import dataclass
from enum import Enum
from urllib.parse import urlencode

from sqlalchemy.orm import Session

from app.config import get_settings
from app.models import TokenPurpose, User, UserRole
from app.services.credential_service import CredentialService
from app.services.one_time_token_service import OneTimeTokenService
from app.services.token_service import TokenService
from app.utils.security import mask_email

logger = logging.getLogger(__name__)
settings = get_settings()


class OAuthProvider(str, Enum):
    """Supported OAuth providers"""
    GOOGLE = "google"


@dataclass
class OAuthUserInfo:
    """User information from OAuth provider"""
    email: str
    name: Optional[str]
    given_name: Optional[str]
    family_name: Optional[str]
    picture_url: Optional[str]
    provider: OAuthProvider
    provider_user_id: str


class OAuthError(Exception):
    """OAuth authentication error"""
    pass


class OAuthService:
    """
    Service for OAuth authentication with Google.
    """

    # OAuth endpoints
    GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
    GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
    GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v3/userinfo"

    def __init__(self, db: Session):
        self.db = db
        self.credentials = CredentialService(db)

    @staticmethod
    def is_provider_configured(provider: OAuthProvider) -> bool:
        """Check if an OAuth provider is configured"""
        if not settings.oauth_enabled:
            return False

        if provider == OAuthProvider.GOOGLE:
            return bool(settings.google_client_id and settings.google_client_secret)
        return False

    @staticmethod
    def get_configured_providers() -> list:
        """Get list of configured OAuth providers"""
        return [p.value for p in OAuthProvider if OAuthService.is_provider_configured(p)]

    @staticmethod
    def redirect_uri(provider: OAuthProvider) -> str:
        return f"{settings.backend_url}/api/auth/oauth/{provider.value}/callback"

    def generate_state_token(self) -> str:
        """Generate CSRF protection state token"""
        return secrets.token_urlsafe(32)

    def get_auth_url(self, provider: OAuthProvider, state: str) -> str:
        """
        Get OAuth authorization URL for provider.

        Args:
            provider: OAuth provider
            state: CSRF state token

        Returns:
            Authorization URL to redirect user to
        """
        if provider == OAuthProvider.GOOGLE:
            params = {
                "client_id": settings.google_client_id,
                "redirect_uri": self.redirect_uri(provider),
                "response_type": "code",
                "scope": "openid email profile",
                "state": state,
                "access_type": "online",
                "prompt": "select_account",
            }
            return f"{self.GOOGLE_AUTH_URL}?{urlencode(params)}"

        raise OAuthError(f"Unsupported provider: {provider}")

    async def exchange_code_for_tokens(
        self,
        provider: OAuthProvider,
        code: str
    ) -> Dict[str, Any]:
        """
        Exchange authorization code for access tokens.

        Args:
            provider: OAuth provider
            code: Authorization code from callback

        Returns:
            Token response dict with access_token, etc.
        """
        if provider != OAuthProvider.GOOGLE:
            raise OAuthError(f"Unsupported provider: {provider}")

        async with httpx.AsyncClient(timeout=10) as client:
            try:
                response = await client.post(
                    self.GOOGLE_TOKEN_URL,
                    data={
                        "client_id": settings.google_client_id,
                        "client_secret": settings.google_client_secret,
                        "code": code,
                        "grant_type": "authorization_code",
                        "redirect_uri": self.redirect_uri(provider),
                    },
                )
            except httpx.HTTPError as e:
                raise OAuthError(f"Token endpoint unreachable: {e}")

            if response.status_code != 200:
                logger.error(f"Token exchange failed with status {response.status_code}")
                raise OAuthError("Failed to exchange code for tokens")

            return response.json()

    async def get_user_info(
        self,
        provider: OAuthProvider,
        access_token: str
    ) -> OAuthUserInfo:
        """
        Get user information from OAuth provider.

        Args:
            provider: OAuth provider
            access_token: Access token from token exchange

        Returns:
            OAuthUserInfo with user details
        """
        if provider != OAuthProvider.GOOGLE:
            raise OAuthError(f"Unsupported provider: {provider}")

        headers = {"Authorization": f"Bearer {access_token}"}

        async with httpx.AsyncClient(timeout=10) as client:
            try:
                response = await client.get(self.GOOGLE_USERINFO_URL, headers=headers)
            except httpx.HTTPError as e:
                raise OAuthError(f"Userinfo endpoint unreachable: {e}")

            if response.status_code != 200:
                raise OAuthError("Failed to get user info")

            data = response.json()
            if data.get("email_verified") is False:
                raise OAuthError("Google account email is not verified")

            return OAuthUserInfo(
                email=data.get("email"),
                name=data.get("name"),
                given_name=data.get("given_name"),
                family_name=data.get("family_name"),
                picture_url=data.get("picture"),
                provider=OAuthProvider.GOOGLE,
                provider_user_id=data.get("sub"),
            )

    def find_or_create_user(self, user_info: OAuthUserInfo) -> User:
        """
        Find existing user or create new one from OAuth info.

        Lookup order is the Google id, then the email. A password account
        found by email gets the Google id linked and is marked confirmed,
        since Google has verified the address. New users have no password
        and no security question.

        Args:
            user_info: OAuth user information

        Returns:
            User object
        """
        now = datetime.utcnow()

        user = self.credentials.find_by_google_id(user_info.provider_user_id)
        if not user:
            user = self.credentials.find_by_email(user_info.email)
            if user:
                user.google_id = user_info.provider_user_id
                user.is_confirmed = True
                logger.info(f"Linked Google identity to existing account {mask_email(user.email)}")

        if user:
            if not user.photo_url and user_info.picture_url:
                user.photo_url = user_info.picture_url
            user.last_login = now
            user.last_activity_at = now
            self.db.commit()
            return user

        name = user_info.name or " ".join(
            part for part in (user_info.given_name, user_info.family_name) if part
        ) or user_info.email.split("@")[0]

        user = self.credentials.create(
            email=user_info.email,
            name=name[:100],
            photo_url=user_info.picture_url,
            google_id=user_info.provider_user_id,
            hashed_password=None,
            role=UserRole.CLIENT.value,
            is_confirmed=True,
            is_active=True,
            created_at=now,
            last_login=now,
            last_activity_at=now,
        )

        logger.info(f"Created new OAuth user {mask_email(user.email)} via {user_info.provider.value}")
        return user

    async def authenticate(self, provider: OAuthProvider, code: str) -> Tuple[User, str]:
        """
        Full OAuth authentication flow.

        Args:
            provider: OAuth provider
            code: Authorization code from callback

        Returns:
            Tuple of (user, session_token)

        Raises:
            OAuthError: If authentication fails
        """
        # Exchange code for tokens
        tokens = await self.exchange_code_for_tokens(provider, code)
        access_token = tokens.get("access_token")

        if not access_token:
            raise OAuthError("No access token received")

        # Get user info
        user_info = await self.get_user_info(provider, access_token)

        if not user_info.email or not user_info.provider_user_id:
            raise OAuthError("Email not provided by OAuth provider")

        user = self.find_or_create_user(user_info)

        if not user.is_active:
            raise OAuthError("User account is inactive")

        session_token = TokenService.issue_oauth_session(
            user.id, user.email, valid_after=user.tokens_valid_after
        )
        return user, session_token


class OAuthCodeExchange:
    """
    Short-lived, single-use codes standing in for a session token.

    The callback redirects the browser with ``?code=...``; the frontend then
    posts the code to receive the session token. A code is spent on its
    first use whether or not that use succeeds.
    """

    def __init__(self, db: Session):
        self.db = db
        self.tokens = OneTimeTokenService(db)

    def issue_code(self, user: User, session_token: str, now: Optional[datetime] = None) -> str:
        ttl = timedelta(minutes=settings.oauth_exchange_code_expire_minutes)
        return self.tokens.issue(
            user, TokenPurpose.OAUTH_EXCHANGE, ttl, payload=session_token, now=now
        )

    def exchange(self, code: str, now: Optional[datetime] = None) -> Optional[Tuple[User, str]]:
        """
        Trade an exchange code for its session token.

        Expired codes are deleted on sight.

        Returns:
            Tuple of (user, session_token), or None when the code is unknown,
            expired or already used
        """
        now = now or datetime.utcnow()
        record = self.tokens.find_any(code, TokenPurpose.OAUTH_EXCHANGE)
        if not record or record.used:
            return None

        if record.expires_at <= now:
            self.tokens.delete(record)
            return None

        session_token = record.payload
        user = record.user
        if not self.tokens.consume(record, now=now):
            self.db.rollback()
            return None
        self.db.commit()

        if not session_token or not user or not user.is_active:
            return None

        return user, session_token
