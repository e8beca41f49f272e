"""
Credential store for principals.

Handles:
- Password and security-answer hashing and verification (bcrypt)
- Password policy validation
- Principal lookup and creation
"""

import re
from typing import Iterable, Optional

from passlib.context import CryptContext
from sqlalchemy.orm import Session

from app.config import get_settings
from app.error_handlers import ValidationError
from app.models import User
from app.utils.security import is_common_answer, sanitize_email

settings = get_settings()

# Password hashing context (bcrypt)
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=settings.bcrypt_rounds)

COMMON_PASSWORDS = frozenset({
    "password", "password123", "password1", "12345678", "123456789", "1234567890",
    "qwerty", "qwerty123", "abc123", "admin", "admin123", "letmein", "welcome",
    "monkey", "dragon", "master", "sunshine", "princess", "football", "baseball",
    "iloveyou", "trustno1", "superman", "batman", "shadow", "mustang", "harley",
    "freedom", "whatever", "hello", "charlie", "aa123456", "welcome123", "monkey123",
    "password1!", "password123!", "qwerty123!", "welcome1!", "admin123!",
})

_REPEATED_CHARS = re.compile(r"(.)\1{2,}")

COMMON_ANSWER_MESSAGE = "Security answer is too common or too short"


class PasswordValidationError(Exception):
    """Raised when password doesn't meet policy requirements"""
    pass


class CredentialService:
    """Hashing, policy checks and principal lookups"""

    def __init__(self, db: Session):
        self.db = db

    # ==================== Hashing ====================

    @staticmethod
    def hash_password(password: str) -> str:
        """
        Hash password using bcrypt.

        Args:
            password: Plain text password

        Returns:
            Hashed password string
        """
        return pwd_context.hash(password)

    @staticmethod
    def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
        """
        Verify password against hashed version.

        Google-only accounts have no hash; any password is rejected for them.

        Args:
            plain_password: Plain text password
            hashed_password: Bcrypt hashed password, or None

        Returns:
            True if password matches, False otherwise
        """
        if not plain_password or not hashed_password:
            return False
        return pwd_context.verify(plain_password, hashed_password)

    @staticmethod
    def dummy_verify() -> None:
        """Spend one bcrypt verification so unknown accounts cost the same as known ones."""
        pwd_context.dummy_verify()

    @staticmethod
    def hash_answer(answer: str) -> str:
        """Security answers use the password scheme; surrounding whitespace is ignored."""
        return pwd_context.hash(answer.strip())

    @staticmethod
    def verify_answer(answer: str, answer_hash: Optional[str]) -> bool:
        if not answer or not answer_hash:
            return False
        return pwd_context.verify(answer.strip(), answer_hash)

    # ==================== Password Policy ====================

    @staticmethod
    def validate_password_policy(password: str, personal_data: Optional[Iterable[str]] = None) -> None:
        """
        Validate password against security policy.

        Args:
            password: Password to validate
            personal_data: Values the password must not contain (name, email
                local part, phone). Fragments shorter than 3 characters are ignored.

        Raises:
            PasswordValidationError: If password doesn't meet requirements
        """
        if len(password) < settings.password_min_length:
            raise PasswordValidationError(
                f"Password must be at least {settings.password_min_length} characters long"
            )

        if settings.password_require_uppercase and not re.search(r"[A-Z]", password):
            raise PasswordValidationError("Password must contain at least one uppercase letter")

        if settings.password_require_lowercase and not re.search(r"[a-z]", password):
            raise PasswordValidationError("Password must contain at least one lowercase letter")

        if settings.password_require_digit and not re.search(r"\d", password):
            raise PasswordValidationError("Password must contain at least one digit")

        if settings.password_require_special and not re.search(r"[^A-Za-z0-9\s]", password):
            raise PasswordValidationError("Password must contain at least one special character")

        if password.lower() in COMMON_PASSWORDS:
            raise PasswordValidationError("Password is too common")

        if _REPEATED_CHARS.search(password):
            raise PasswordValidationError("Password must not repeat the same character 3 or more times in a row")

        lowered = password.lower()
        for value in personal_data or ():
            fragment = (value or "").strip().lower()
            if len(fragment) >= 3 and fragment in lowered:
                raise PasswordValidationError("Password must not contain personal data")

    @staticmethod
    def personal_data_for(user: User) -> list:
        """Profile values a new password may not contain"""
        return [user.name, user.email.split("@")[0], user.phone]

    # ==================== Lookups ====================

    def find_by_email(self, email: str) -> Optional[User]:
        return self.db.query(User).filter(User.email == sanitize_email(email)).first()

    def find_by_id(self, user_id) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id).first()

    def find_by_google_id(self, google_id: str) -> Optional[User]:
        return self.db.query(User).filter(User.google_id == google_id).first()

    def email_exists(self, email: str) -> bool:
        return self.find_by_email(email) is not None

    def create(self, **fields) -> User:
        """
        Insert a principal and commit.

        The email is normalised before storage; uniqueness is enforced by the
        database constraint.
        """
        fields["email"] = sanitize_email(fields["email"])
        user = User(**fields)
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)
        return user

    def set_password(self, user: User, new_password: str) -> None:
        """Store a new password hash. Caller commits."""
        user.hashed_password = self.hash_password(new_password)

    def set_security_question(self, user: User, question: str, answer: str) -> None:
        """
        Store a recovery question and the hash of its answer. Caller commits.

        Raises:
            ValidationError: Answer too short or easy to guess
        """
        if is_common_answer(answer):
            raise ValidationError(COMMON_ANSWER_MESSAGE)

        user.security_question = question
        user.security_answer_hash = self.hash_answer(answer)
