"""
Pydantic schemas for password recovery.
"""

from pydantic import BaseModel, EmailStr, Field, field_validator

from app.utils.security import contains_sql_injection, sanitize_email


class _EmailField(BaseModel):
    email: EmailStr = Field(..., description="Account email")

    @field_validator("email")
    @classmethod
    def normalise_email(cls, v):
        v = sanitize_email(v)
        if contains_sql_injection(v):
            raise ValueError("Email contains invalid characters")
        return v


class SecurityQuestionRequest(_EmailField):
    """Ask for the security question of an account"""


class SecurityQuestionResponse(BaseModel):
    email: str
    question: str


class SecurityAnswerRequest(_EmailField):
    """Answer the security question"""
    answer: str = Field(..., min_length=1, max_length=255)


class RecoveryTokenResponse(BaseModel):
    """Token that authorises one password reset"""
    success: bool = True
    message: str
    token: str
    expires_in: int = Field(..., description="Seconds until the token expires")


class EmailRecoveryRequest(_EmailField):
    """Send a reset link by email"""


class RecoveryTokenValidate(_EmailField):
    token: str = Field(..., min_length=1, max_length=128)


class PasswordResetConfirm(_EmailField):
    token: str = Field(..., min_length=1, max_length=128)
    new_password: str = Field(..., min_length=8, max_length=128)
