"""
FastAPI dependencies for authentication and authorization.

Every authenticated request runs the same ordered chain of session checks.
Each check returns ``None`` to allow or a short reason string to deny; the
first denial ends the chain. Denials all surface as one generic 401 so the
caller cannot tell a revoked token from an idle one.

On success the principal's last activity is updated by a background task
after the response is sent.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Sequence

from fastapi import BackgroundTasks, Depends, Security
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError
from sqlalchemy.orm import Session

from app.database import get_db
from app.error_handlers import AccountInactiveError, AuthenticationError, AuthorizationError
from app.models import User, UserRole
from app.services.activity_service import ActivityService
from app.services.credential_service import CredentialService
from app.services.revocation_service import RevocationService
from app.services.token_service import TokenService

logger = logging.getLogger(__name__)

# HTTP Bearer security scheme for JWT
bearer_scheme = HTTPBearer(auto_error=False)

SESSION_REJECTED = "Session expired or revoked. Please sign in again."


@dataclass(frozen=True)
class SessionContext:
    """The authenticated principal plus the token that proved it"""
    user: User
    token: str
    claims: dict


# (db, token, claims, now) -> deny reason or None
SessionCheck = Callable[[Session, str, dict, datetime], Optional[str]]


def check_not_revoked(db: Session, token: str, claims: dict, now: datetime) -> Optional[str]:
    if RevocationService(db).is_revoked(token, now=now):
        return "token revoked"
    return None


def check_issued_after_watermark(db: Session, token: str, claims: dict, now: datetime) -> Optional[str]:
    if RevocationService(db).is_revoked_by_watermark(TokenService.subject(claims), claims["iat"]):
        return "issued before global logout"
    return None


def check_recently_active(db: Session, token: str, claims: dict, now: datetime) -> Optional[str]:
    if ActivityService(db).is_inactive(TokenService.subject(claims), now=now):
        return "inactive beyond timeout"
    return None


SESSION_CHECKS: Sequence[SessionCheck] = (
    check_not_revoked,
    check_issued_after_watermark,
    check_recently_active,
)


def run_session_checks(
    db: Session,
    token: str,
    claims: dict,
    now: Optional[datetime] = None,
    checks: Sequence[SessionCheck] = SESSION_CHECKS,
) -> Optional[str]:
    """
    Run checks in order and stop at the first denial.

    Returns:
        The deny reason, or None when every check allows the session
    """
    now = now or datetime.utcnow()
    for check in checks:
        reason = check(db, token, claims, now)
        if reason:
            return reason
    return None


class AuthDependencies:
    """Authentication and authorization dependencies for FastAPI"""

    @staticmethod
    async def get_session(
        background_tasks: BackgroundTasks,
        credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
        db: Session = Depends(get_db)
    ) -> SessionContext:
        """
        Validate the bearer token and load its principal.

        Raises:
            AuthenticationError: Missing, malformed, expired, revoked or idle session
            AccountInactiveError: Principal deactivated
        """
        if not credentials:
            raise AuthenticationError("No authentication credentials provided")

        token = credentials.credentials
        try:
            claims = TokenService.decode(token)
        except JWTError:
            raise AuthenticationError(SESSION_REJECTED)

        reason = run_session_checks(db, token, claims)
        if reason:
            logger.info(f"Session rejected for user {claims['sub']}: {reason}")
            raise AuthenticationError(SESSION_REJECTED)

        user = CredentialService(db).find_by_id(TokenService.subject(claims))
        if not user:
            raise AuthenticationError(SESSION_REJECTED)

        if not user.is_active:
            raise AccountInactiveError()

        background_tasks.add_task(ActivityService.record_activity, user.id)
        return SessionContext(user=user, token=token, claims=claims)

    @staticmethod
    async def get_current_user(
        background_tasks: BackgroundTasks,
        credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
        db: Session = Depends(get_db)
    ) -> User:
        """Authenticated User object for routes that do not need the token itself"""
        session = await AuthDependencies.get_session(background_tasks, credentials, db)
        return session.user

    @staticmethod
    def require_role(*allowed_roles: UserRole):
        """
        Create dependency that requires user to have one of the specified roles.

        Usage:
            @router.get("/admin-only")
            async def admin_endpoint(user: User = Depends(require_role(UserRole.ADMIN))):
                ...

        Args:
            *allowed_roles: One or more UserRole values

        Returns:
            Dependency function that validates user role
        """
        allowed = {role.value for role in allowed_roles}

        async def role_checker(
            user: User = Depends(AuthDependencies.get_current_user)
        ) -> User:
            if user.role not in allowed:
                raise AuthorizationError(
                    f"Permission denied. Required role: {', '.join(sorted(allowed))}"
                )
            return user

        return role_checker

    @staticmethod
    def require_admin():
        """
        Require user to have admin role.

        Usage:
            @router.post("/users/{user_id}/unlock")
            async def unlock(user: User = Depends(require_admin())):
                ...
        """
        return AuthDependencies.require_role(UserRole.ADMIN)


# Convenience exports for simpler imports
get_session = AuthDependencies.get_session
get_current_user = AuthDependencies.get_current_user
require_admin = AuthDependencies.require_admin
require_role = AuthDependencies.require_role
