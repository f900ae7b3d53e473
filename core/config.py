"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for Priorly happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the official FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY). Type coercion and validation are built in.

  @model_validator(mode="after"): Cross-field validation after all fields are
      resolved. Enforces the SECRET_KEY policy and the OTP timing constants.

Security notes:
  SECRET_KEY signs the Starlette session cookie that carries the OAuth state
  between the provider redirect and the callback. Shorter than 32 chars is
  rejected outright. In production mode (DEBUG not set or false) a missing
  SECRET_KEY is a hard startup failure.

OTP constants:
  One value each, all documented here rather than scattered across handlers:
    otp_digits                      6      -- code length
    otp_ttl_seconds                 600    -- code lifetime (10 minutes)
    otp_cooldown_seconds            60     -- min gap between requests per email
    otp_generation_timeout_seconds  30     -- cap on the unique-code retry loop

Layer rule: core/ is the kernel. This module may not import from api/,
auth/, or todo/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("priorly.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'priorly.db'}"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file. The model_validator enforces
    production-safety rules at startup.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""
    database_url: str = _DEFAULT_DB_URL
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]
    # Base URL of the web client, used for links in outgoing mail.
    client_uri: str = "http://localhost:3000"

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    secure_cookies: bool = False
    session_cookie_name: str = "sid"
    session_expire_seconds: int = 3 * 24 * 60 * 60  # 3 days

    # ------------------------------------------------------------------
    # One-time codes
    # ------------------------------------------------------------------

    otp_digits: int = 6
    otp_ttl_seconds: int = 10 * 60
    otp_cooldown_seconds: int = 60
    otp_generation_timeout_seconds: float = 30.0

    # Sweep interval for expired OTP records and sessions.
    purge_interval_seconds: int = 15 * 60

    # ------------------------------------------------------------------
    # Rate limiting (slowapi, per client IP)
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"
    otp_rate_limit: str = "5/minute"

    # ------------------------------------------------------------------
    # Mail (SMTP). Empty smtp_host means "log instead of send".
    # ------------------------------------------------------------------

    smtp_host: str = ""
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_starttls: bool = True
    mail_from: str = "Priorly <no-reply@priorly.local>"

    # ------------------------------------------------------------------
    # OAuth (optional -- empty string means provider is disabled)
    # ------------------------------------------------------------------

    google_client_id: str = ""
    google_client_secret: str = ""

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            OAuth state cookies will not survive restart -- acceptable for
            local dev.

        Production mode (DEBUG=false or not set): refuse to start if
            SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("WARNING: Using auto-generated SECRET_KEY. OAuth state will not persist across restarts.")
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self

    @model_validator(mode="after")
    def validate_otp_timing(self) -> "Settings":
        """Reject OTP constants that would make the ledger unusable.

        The cooldown must be shorter than the TTL, otherwise a user whose
        code expired could still be locked out of requesting a new one.
        """
        if not 4 <= self.otp_digits <= 9:
            raise ValueError("OTP_DIGITS must be between 4 and 9.")
        if self.otp_ttl_seconds <= 0 or self.otp_cooldown_seconds < 0:
            raise ValueError("OTP_TTL_SECONDS must be positive and OTP_COOLDOWN_SECONDS non-negative.")
        if self.otp_cooldown_seconds >= self.otp_ttl_seconds:
            raise ValueError("OTP_COOLDOWN_SECONDS must be shorter than OTP_TTL_SECONDS.")
        if self.otp_generation_timeout_seconds <= 0:
            raise ValueError("OTP_GENERATION_TIMEOUT_SECONDS must be positive.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    Uses lru_cache so Settings() is instantiated exactly once -- at first call.
    All modules should call get_settings() rather than constructing Settings()
    directly, except tests that need a one-off configuration.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
