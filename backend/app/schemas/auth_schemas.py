"""
Pydantic schemas for authentication, registration and user management.

Each endpoint has one success model; failures share ``ErrorResponse``.
Free-text fields are trimmed, HTML-escaped and screened for SQL fragments
before they reach a service.
"""

import enum
from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, ValidationInfo, field_validator

from app.models import UserRole
from app.utils.security import (
    contains_sql_injection,
    sanitize_email,
    sanitize_input,
    sanitize_phone,
)


class OtpChannel(str, enum.Enum):
    """Where the registration code is sent"""
    EMAIL = "email"
    SMS = "sms"


def _normalise_email(value: str) -> str:
    value = sanitize_email(value)
    if contains_sql_injection(value):
        raise ValueError("Email contains invalid characters")
    return value


NAME_MAX_LENGTH = 100
QUESTION_MAX_LENGTH = 255
ANSWER_MAX_LENGTH = 255


def _clean_text(value: Optional[str], max_length: Optional[int] = None) -> Optional[str]:
    if value is None:
        return None
    if contains_sql_injection(value):
        raise ValueError("Value contains disallowed content")
    value = sanitize_input(value)
    # The escaped form is what gets stored, so the column limit applies to it
    if max_length is not None and len(value) > max_length:
        raise ValueError(f"Value must be at most {max_length} characters once special characters are escaped")
    return value


def _screen_answer(value: str) -> str:
    # Hashed, never rendered; trimmed only
    if contains_sql_injection(value):
        raise ValueError("Value contains disallowed content")
    return value.strip()


# ==================== Error Schema ====================

class ErrorResponse(BaseModel):
    """Body of every error response"""
    error: str = Field(..., description="Stable error code, e.g. ACCOUNT_LOCKED")
    message: str = Field(..., description="Human readable message")
    path: str = Field(..., description="Request path")
    details: Optional[list] = Field(None, description="Validation details")
    locked_until: Optional[datetime] = Field(None, description="Lock expiry (ACCOUNT_LOCKED only)")


class MessageResponse(BaseModel):
    """Generic acknowledgement"""
    success: bool = Field(default=True)
    message: str


# ==================== Authentication Schemas ====================

class LoginRequest(BaseModel):
    """Login request with email and password"""
    email: EmailStr = Field(..., description="Account email")
    password: str = Field(..., min_length=1, max_length=128, description="Password")

    @field_validator("email")
    @classmethod
    def normalise_email(cls, v):
        return _normalise_email(v)


class UserSummary(BaseModel):
    """Identity embedded in token responses"""
    id: UUID
    email: str
    name: str
    role: UserRole
    is_confirmed: bool

    class Config:
        from_attributes = True


class TokenResponse(BaseModel):
    """Session token response"""
    access_token: str = Field(..., description="Session token; send as `Authorization: Bearer <token>`")
    token_type: str = Field(default="bearer", description="Token type")
    expires_in: int = Field(..., description="Token lifetime in seconds")
    user: UserSummary


class LogoutRequest(BaseModel):
    """Logout options"""
    all: bool = Field(default=False, description="Also end every other session of this account")


class CsrfTokenResponse(BaseModel):
    csrf_token: str


# ==================== Registration Schemas ====================

class RegisterRequest(BaseModel):
    """New client account"""
    name: str = Field(..., min_length=2, max_length=NAME_MAX_LENGTH)
    email: EmailStr
    phone: Optional[str] = Field(None, max_length=20)
    password: str = Field(..., min_length=8, max_length=128)
    birth_date: Optional[date] = None
    security_question: str = Field(..., min_length=5, max_length=QUESTION_MAX_LENGTH)
    security_answer: str = Field(..., min_length=1, max_length=ANSWER_MAX_LENGTH)
    accepts_privacy_notice: bool = Field(..., description="Must be true")
    accepts_promotions: bool = False
    otp_channel: OtpChannel = Field(default=OtpChannel.EMAIL, description="Where to send the verification code")

    @field_validator("email")
    @classmethod
    def normalise_email(cls, v):
        return _normalise_email(v)

    @field_validator("name", "security_question")
    @classmethod
    def clean_text(cls, v, info: ValidationInfo):
        limit = NAME_MAX_LENGTH if info.field_name == "name" else QUESTION_MAX_LENGTH
        v = _clean_text(v, limit)
        if not v:
            raise ValueError("Value must not be blank")
        return v

    @field_validator("security_answer")
    @classmethod
    def screen_answer(cls, v):
        return _screen_answer(v)

    @field_validator("phone")
    @classmethod
    def clean_phone(cls, v):
        if v is None:
            return None
        return sanitize_phone(v) or None

    @field_validator("accepts_privacy_notice")
    @classmethod
    def privacy_notice_accepted(cls, v):
        if not v:
            raise ValueError("The privacy notice must be accepted")
        return v


class RegisterResponse(BaseModel):
    """Registration outcome; the account exists even if the code was not delivered"""
    success: bool = True
    message: str
    user_id: UUID
    otp_channel: OtpChannel
    notification_sent: bool


class VerifyOtpRequest(BaseModel):
    email: EmailStr
    code: str = Field(..., pattern=r"^\d{6}$", description="6-digit verification code")

    @field_validator("email")
    @classmethod
    def normalise_email(cls, v):
        return _normalise_email(v)


class ResendOtpRequest(BaseModel):
    email: EmailStr
    channel: OtpChannel = OtpChannel.EMAIL

    @field_validator("email")
    @classmethod
    def normalise_email(cls, v):
        return _normalise_email(v)


class ResendOtpResponse(BaseModel):
    success: bool = True
    message: str
    notification_sent: bool


# ==================== User Schemas ====================

class UserResponse(BaseModel):
    """Profile of a user"""
    id: UUID
    email: str
    name: str
    phone: Optional[str]
    birth_date: Optional[date]
    photo_url: Optional[str]
    role: UserRole
    is_confirmed: bool
    is_active: bool
    has_security_question: bool
    google_linked: bool
    accepts_promotions: bool
    created_at: datetime
    last_login: Optional[datetime]

    @classmethod
    def from_user(cls, user) -> "UserResponse":
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            phone=user.phone,
            birth_date=user.birth_date,
            photo_url=user.photo_url,
            role=UserRole(user.role),
            is_confirmed=user.is_confirmed,
            is_active=user.is_active,
            has_security_question=user.has_security_question,
            google_linked=bool(user.google_id),
            accepts_promotions=user.accepts_promotions,
            created_at=user.created_at,
            last_login=user.last_login,
        )


class UserListResponse(BaseModel):
    users: List[UserResponse]
    total: int


class ProfileUpdate(BaseModel):
    """Editable profile fields"""
    name: Optional[str] = Field(None, min_length=2, max_length=NAME_MAX_LENGTH)
    phone: Optional[str] = Field(None, max_length=20)
    birth_date: Optional[date] = None
    accepts_promotions: Optional[bool] = None

    @field_validator("name")
    @classmethod
    def clean_name(cls, v):
        return _clean_text(v, NAME_MAX_LENGTH)

    @field_validator("phone")
    @classmethod
    def clean_phone(cls, v):
        if v is None:
            return None
        return sanitize_phone(v) or None


class ChangePasswordRequest(BaseModel):
    """Change password from the profile page"""
    current_password: str = Field(..., min_length=1, max_length=128)
    new_password: str = Field(..., min_length=8, max_length=128)


class SecurityQuestionUpdate(BaseModel):
    """Set or replace the question used for password recovery"""
    question: str = Field(..., min_length=5, max_length=QUESTION_MAX_LENGTH)
    answer: str = Field(..., min_length=1, max_length=ANSWER_MAX_LENGTH)
    current_password: Optional[str] = Field(
        None, max_length=128, description="Required for accounts that have a password"
    )

    @field_validator("question")
    @classmethod
    def clean_question(cls, v):
        v = _clean_text(v, QUESTION_MAX_LENGTH)
        if not v:
            raise ValueError("Value must not be blank")
        return v

    @field_validator("answer")
    @classmethod
    def screen_answer(cls, v):
        return _screen_answer(v)
