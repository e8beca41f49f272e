from pydantic_settings import BaseSettings
from pydantic import field_validator
from functools import lru_cache


class Settings(BaseSettings):
    # Database
    database_url: str = "postgresql://salon:salon@db:5432/salon"

    # Application
    app_name: str = "Salon Auth Service"
    debug: bool = False
    log_level: str = "INFO"
    frontend_url: str = "http://localhost:3000"
    backend_url: str = "http://localhost:8000"
    cors_origins: list[str] = []  # Comma-separated via CORS_ORIGINS
    max_request_size: int = 1 * 1024 * 1024  # 1MB, auth payloads are small
    enable_hsts: bool = True

    # Logging
    log_dir: str = ""  # Empty disables file logging
    log_json: bool = False  # Enable JSON logging for production
    enable_request_logging: bool = True

    # Redis (OAuth state values)
    redis_url: str = "redis://redis:6379/0"
    oauth_state_ttl_seconds: int = 600

    # JWT Authentication
    jwt_secret_key: str = ""  # REQUIRED: Generate with: python -c "import secrets; print(secrets.token_urlsafe(64))"
    jwt_algorithm: str = "HS256"
    jwt_session_expire_minutes: int = 1440  # Password login sessions last 1 day
    jwt_oauth_session_expire_days: int = 7  # Google login sessions last 7 days

    # Session security
    inactivity_timeout_minutes: int = 15
    max_failed_login_attempts: int = 5
    account_lockout_duration_minutes: int = 15

    # Recovery / one-time tokens
    recovery_question_token_expire_minutes: int = 15
    recovery_email_token_expire_minutes: int = 10
    oauth_exchange_code_expire_minutes: int = 5
    otp_expire_minutes: int = 2
    otp_length: int = 6

    # Password Policy
    password_min_length: int = 8
    password_require_uppercase: bool = True
    password_require_lowercase: bool = True
    password_require_digit: bool = True
    password_require_special: bool = True
    bcrypt_rounds: int = 12

    # Email (SMTP)
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_from: str = ""
    smtp_use_tls: bool = True

    # SMS gateway (HTTP API)
    sms_api_url: str = ""
    sms_api_key: str = ""
    sms_from_number: str = ""
    sms_default_country_code: str = "+52"

    # OAuth / SSO
    oauth_enabled: bool = False
    google_client_id: str = ""
    google_client_secret: str = ""

    # Rate limiting
    rate_limit_enabled: bool = True
    rate_limit_default: str = "100/minute"
    rate_limit_login: str = "5/minute"
    rate_limit_recovery: str = "3/minute"
    rate_limit_storage_uri: str = "memory://"

    # Background jobs
    scheduler_enabled: bool = True
    cleanup_interval_minutes: int = 60

    # CSRF (double-submit cookie)
    csrf_enabled: bool = True
    csrf_cookie_name: str = "csrf_token"
    csrf_header_name: str = "X-CSRF-Token"

    @field_validator('cors_origins', mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        """Parse comma-separated origins from environment variable"""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(',') if origin.strip()]
        return v or []

    class Config:
        env_file = ".env"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    return Settings()
