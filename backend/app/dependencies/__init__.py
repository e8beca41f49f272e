"""
FastAPI dependencies for the salon auth service.
"""

from app.dependencies.auth import (
    get_session,
    get_current_user,
    require_admin,
    require_role,
    run_session_checks,
    AuthDependencies,
    SessionContext,
)

__all__ = [
    "get_session",
    "get_current_user",
    "require_admin",
    "require_role",
    "run_session_checks",
    "AuthDependencies",
    "SessionContext",
]
