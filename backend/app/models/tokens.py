"""
Token bookkeeping models.

- RevokedToken: individually revoked session tokens (logout), kept until the
  token would have expired anyway.
- OneTimeToken: single-use, time-boxed tokens for password recovery and the
  OAuth code exchange. Only the SHA256 of the token is stored.
"""

from sqlalchemy import Column, String, DateTime, Boolean, ForeignKey, Text, Uuid
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid
import enum
from app.database import Base


class TokenPurpose(str, enum.Enum):
    """What a one-time token unlocks"""
    SECURITY_QUESTION = "security_question"  # Recovery after a correct security answer
    EMAIL_LINK = "email_link"                # Recovery link sent by email
    OAUTH_EXCHANGE = "oauth_exchange"        # Code traded for a session token


RECOVERY_PURPOSES = (TokenPurpose.SECURITY_QUESTION, TokenPurpose.EMAIL_LINK)


class RevokedToken(Base):
    """Session token revoked before its natural expiry"""
    __tablename__ = "revoked_tokens"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    # Token hash (SHA256) - never store plaintext
    token_hash = Column(String(64), unique=True, nullable=False, index=True)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True)

    expires_at = Column(DateTime, nullable=False, index=True)
    revoked_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<RevokedToken(id={self.id}, expires_at={self.expires_at})>"


class OneTimeToken(Base):
    """Single-use token for recovery or OAuth code exchange"""
    __tablename__ = "one_time_tokens"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    # Token hash (SHA256) - never store plaintext
    token_hash = Column(String(64), unique=True, nullable=False, index=True)
    purpose = Column(String(32), nullable=False, index=True)
    email = Column(String(255), nullable=False, index=True)

    # Session token unlocked by an OAuth exchange code; cleared once used
    payload = Column(Text, nullable=True)

    # Token metadata
    expires_at = Column(DateTime, nullable=False, index=True)
    used = Column(Boolean, default=False, nullable=False)
    used_at = Column(DateTime, nullable=True)

    # Client information (for audit trail)
    request_ip = Column(String(45), nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    user = relationship("User", backref="one_time_tokens")

    def __repr__(self):
        return f"<OneTimeToken(id={self.id}, purpose={self.purpose}, used={self.used})>"
