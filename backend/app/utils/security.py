"""
Input sanitization and log redaction helpers.

Used by request schemas (free-text fields) and by the logging layer so that
passwords, tokens, OTP codes and security answers never reach a log record.
"""
import html
import re
from typing import Any

REDACTED = "***REDACTED***"

# Key fragments that mark a value as sensitive (matched case-insensitively)
SENSITIVE_KEYS = (
    "password",
    "token",
    "secret",
    "authorization",
    "cookie",
    "otp",
    "answer",
)

# Keys that are sensitive only as an exact name (``status_code`` is not)
SENSITIVE_EXACT_KEYS = ("code", "state")

COMMON_ANSWERS = (
    "123",
    "1234",
    "12345",
    "123456",
    "password",
    "password123",
    "admin",
    "test",
    "prueba",
    "qwerty",
    "abc123",
    "welcome",
    "nombre",
    "apellido",
    "sin respuesta",
    "no sé",
    "no se",
    "no tengo",
    "ninguna",
    "ninguno",
)

_EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")

# Only patterns that cannot appear in a well-formed address
_EMAIL_SQL_PATTERNS = [
    re.compile(r"['\"]\s*((union|select|insert|update|delete|drop|exec)\s+)", re.I),
    re.compile(r"union\s+select\s+", re.I),
    re.compile(r"select\s+[\w*]+\s+from\s+", re.I),
    re.compile(r"--\s*$", re.M),
    re.compile(r"/\*.*\*/"),
    re.compile(r"\s+(or|and)\s+['\"]?1['\"]?\s*=\s*['\"]?1['\"]?", re.I),
    re.compile(r"(%27|%22|%3D|%3B).*(union|select|insert|update|delete|drop)", re.I),
]

_SQL_PATTERNS = [
    re.compile(r"['\"]\s*((union|select|insert|update|delete|drop|exec|execute)\s+)", re.I),
    re.compile(r"union\s+select\s+", re.I),
    re.compile(r"select\s+[\w*]+\s+from\s+", re.I),
    re.compile(r"insert\s+into\s+\w+\s+values", re.I),
    re.compile(r"delete\s+from\s+\w+", re.I),
    re.compile(r"drop\s+table\s+\w+", re.I),
    re.compile(r"update\s+\w+\s+set\s+", re.I),
    re.compile(r"exec(ute)?\s+(xp_|sp_)", re.I),
    re.compile(r"--\s*$", re.M),
    re.compile(r"/\*.*\*/"),
    re.compile(r"\s+or\s+['\"]?1['\"]?\s*=\s*['\"]?1['\"]?", re.I),
    re.compile(r"\s+and\s+['\"]?1['\"]?\s*=\s*['\"]?1['\"]?", re.I),
    re.compile(r"(%27|%22|%3D|%3B).*(union|select|insert|update|delete|drop)", re.I),
]


def sanitize_input(value: str) -> str:
    """HTML-escape a free-text value and strip surrounding whitespace."""
    if not value or not isinstance(value, str):
        return ""
    return html.escape(value.strip(), quote=True).replace("/", "&#x2F;")


def sanitize_email(email: str) -> str:
    """Normalise an email address (lower-case, trimmed)."""
    if not email or not isinstance(email, str):
        return ""
    return email.strip().lower()


def sanitize_phone(phone: str) -> str:
    """Keep digits, spaces, dashes, parentheses and a leading plus sign."""
    if not phone or not isinstance(phone, str):
        return ""
    return re.sub(r"[^\d\s\-+()]", "", phone).strip()


def contains_sql_injection(value: str) -> bool:
    """
    Heuristic check for SQL fragments in user-supplied text.

    Storage access is always parameterized; this only rejects obviously
    hostile input early. Values shaped like an email address are checked
    against a narrower pattern set to avoid false positives.

    Args:
        value: Raw user input

    Returns:
        True if the value matches a known injection pattern
    """
    if not isinstance(value, str) or len(value) < 3:
        return False

    patterns = _EMAIL_SQL_PATTERNS if _EMAIL_PATTERN.match(value) else _SQL_PATTERNS
    return any(pattern.search(value) for pattern in patterns)


def is_common_answer(answer: str) -> bool:
    """True if a security answer is too short or trivially guessable."""
    if not isinstance(answer, str):
        return False

    normalized = answer.strip().lower()
    if len(normalized) < 3:
        return True

    return any(
        normalized == common or common in normalized or normalized in common
        for common in COMMON_ANSWERS
    )


def is_sensitive_key(key: str) -> bool:
    lowered = key.lower()
    if lowered in SENSITIVE_EXACT_KEYS:
        return True
    return any(fragment in lowered for fragment in SENSITIVE_KEYS)


def redact_sensitive(data: Any) -> Any:
    """
    Return a copy of ``data`` with sensitive values masked.

    Dicts are walked recursively; keys whose name contains a sensitive
    fragment (password, token, otp, answer, ...) have their values replaced.
    Lists and tuples are walked element by element. Scalars are returned as-is.
    """
    if isinstance(data, dict):
        return {
            key: REDACTED if isinstance(key, str) and is_sensitive_key(key) else redact_sensitive(value)
            for key, value in data.items()
        }
    if isinstance(data, (list, tuple)):
        return type(data)(redact_sensitive(item) for item in data)
    return data


def mask_email(email: str) -> str:
    """Shorten an email for log lines: ``ana@example.com`` -> ``a***@example.com``"""
    if not email or "@" not in email:
        return "***"
    local, _, domain = email.partition("@")
    return f"{local[:1]}***@{domain}"
