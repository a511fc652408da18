from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """
    Application configuration loaded from environment variables.
    Uses pydantic for validation and type safety.
    """
    environment: str = "development"
    debug: bool = True

    database_url: str = "sqlite:///./bizboost.db"

    # Session lifetimes in hours
    # Members keep their account when the session lapses, guests do not
    session_expire_hours: int = 24 * 7
    guest_session_expire_hours: int = 24

    # Hard ceiling on a guest account, independent of its session
    guest_lifetime_hours: int = 24

    # Header carrying the opaque session token
    token_header: str = "x-user-token"

    # Tokens outside these bounds are rejected before any lookup
    token_min_length: int = 16
    token_max_length: int = 256

    # Email-code signup
    signup_code_ttl_minutes: int = 10
    signup_code_digits: int = 6

    # Return the verification code in the signup response (local development only)
    expose_dev_code: bool = False

    password_min_length: int = 8
    password_max_length: int = 128

    # Google OAuth audience. Google login is refused while unset.
    google_client_id: Optional[str] = None

    # Outgoing mail. Without smtp_host codes are logged instead of sent.
    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_user: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_use_tls: bool = True
    mail_from: Optional[str] = None

    log_level: str = "INFO"
    log_json: bool = False

    class Config:
        env_file = ".env"
        case_sensitive = False


@lru_cache
def get_settings() -> Settings:
    """
    Cached settings instance. Load once, reuse throughout application lifecycle.
    """
    return Settings()
