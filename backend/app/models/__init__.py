"""
SQLAlchemy models for the salon auth service.

All models are exported from this module for easy importing.
"""

# User authentication models
from app.models.user import User, UserRole

# Token bookkeeping models
from app.models.tokens import RevokedToken, OneTimeToken, TokenPurpose, RECOVERY_PURPOSES

__all__ = [
    # User models
    "User",
    "UserRole",
    # Token models
    "RevokedToken",
    "OneTimeToken",
    "TokenPurpose",
    "RECOVERY_PURPOSES",
]
