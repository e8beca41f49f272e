"""
User (principal) model.

A principal signs in either with email + password or through Google. Google
identities may have no password and are created pre-confirmed; every other
account must verify its registration OTP before it can log in.
"""

from sqlalchemy import Column, String, DateTime, Date, Boolean, Integer, Uuid
from datetime import datetime
import uuid
import enum
from app.database import Base


class UserRole(str, enum.Enum):
    """User roles for RBAC"""
    CLIENT = "client"        # Salon customer
    ADMIN = "admin"          # Staff: user management, unlocks


class User(Base):
    """Principal credential record plus the salon profile fields"""
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    email = Column(String(255), unique=True, nullable=False, index=True)  # Stored lower-cased
    name = Column(String(100), nullable=False)
    phone = Column(String(20), nullable=True)
    birth_date = Column(Date, nullable=True)
    photo_url = Column(String(500), nullable=True)

    # Credentials - hashes only, never plaintext
    hashed_password = Column(String(255), nullable=True)  # NULL for Google-only accounts
    security_question = Column(String(255), nullable=True)
    security_answer_hash = Column(String(255), nullable=True)
    google_id = Column(String(255), unique=True, nullable=True, index=True)

    # Role-based access control - stored as string, validated by Python enum
    role = Column(String(20), nullable=False, default=UserRole.CLIENT.value)

    # Account status
    is_confirmed = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    accepts_privacy_notice = Column(Boolean, default=False, nullable=False)
    accepts_promotions = Column(Boolean, default=False, nullable=False)

    # Registration OTP (SHA256 of the code)
    otp_code_hash = Column(String(64), nullable=True)
    otp_expires_at = Column(DateTime, nullable=True)

    # Brute-force lockout
    failed_login_attempts = Column(Integer, default=0, nullable=False)
    locked_until = Column(DateTime, nullable=True)
    last_failed_login_at = Column(DateTime, nullable=True)

    # Session security
    last_activity_at = Column(DateTime, nullable=True)
    tokens_valid_after = Column(Integer, nullable=True)  # Epoch seconds; tokens with iat <= this are dead

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    last_login = Column(DateTime, nullable=True)
    deactivated_at = Column(DateTime, nullable=True)

    @property
    def is_oauth_only(self) -> bool:
        return bool(self.google_id) and not self.hashed_password

    @property
    def has_security_question(self) -> bool:
        return bool(self.security_question and self.security_answer_hash)

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"
