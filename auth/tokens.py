"""
auth/tokens.py -- Password hashing, session tokens, one-time codes, cookies.

Security design decisions:
  Passwords: bcrypt with a per-record salt from bcrypt.gensalt(). Bcrypt is
       the right choice for low-entropy secrets because its cost factor makes
       brute force expensive. The _DUMMY_HASH constant enables timing
       equalization in authenticate_user() so response time does not reveal
       whether an email is registered.

  Session tokens: secrets.token_urlsafe(32) gives 256 bits of entropy. The
       token is the session's primary key, so lookup is a single indexed read.
       Never sequential, never derived from the user id.

  One-time codes: secrets.randbelow() over the full N-digit space, zero
       padded, so "004217" is as likely as "913370". random.random() is not
       acceptable here -- it is predictable from prior outputs.

  Cookie: the session token travels in an httpOnly, samesite=strict cookie
       whose max_age matches the server-side session lifetime.

Layer rule: no imports from api/ or todo/. Import from core/ is allowed --
core/ is the kernel and has no reverse dependencies.
"""

from __future__ import annotations

import logging
import secrets
from typing import TYPE_CHECKING

import bcrypt

from core.config import get_settings

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore

logger = logging.getLogger("priorly.auth")

_settings = get_settings()

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
#
# Using bcrypt directly rather than passlib[bcrypt] because passlib's internal
# wrap-bug detection creates a password longer than 72 bytes, which bcrypt 4.x
# rejects with an explicit error.
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    Passwords longer than 72 bytes are truncated by bcrypt. The request
    schemas cap passwords at 64 characters, which keeps ASCII input below the
    truncation threshold.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed hash in storage -- treat as a mismatch, never as a match.
        logger.warning("Stored password hash could not be parsed")
        return False


# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones. Always call verify_password() even when the
# email does not exist.
_DUMMY_HASH: str = hash_password("priorly_timing_dummy")


# ---------------------------------------------------------------------------
# Credential checks (constant-time with respect to account existence)
# ---------------------------------------------------------------------------


def check_user_password(user: User | None, password: str) -> bool:
    """Return True only if user exists, has a local password, and it matches.

    Runs bcrypt exactly once on every path:
    - No user / OAuth-only user: bcrypt against _DUMMY_HASH
    - Existing user: bcrypt against the stored hash
    """
    if user is None or user.password_hash is None:
        verify_password(password, _DUMMY_HASH)
        return False
    return verify_password(password, user.password_hash)


def authenticate_user(store: UserStore, email: str, password: str) -> User | None:
    """Authenticate an email/password login with timing equalization.

    Returns the User on success, None on any failure. Callers must not
    inline find_by_email() + verify_password() -- that re-introduces the
    timing difference between unknown emails and wrong passwords.
    """
    user = store.find_by_email(email)
    if not check_user_password(user, password):
        return None
    return user


# ---------------------------------------------------------------------------
# Session tokens and one-time codes
# ---------------------------------------------------------------------------


def generate_session_token() -> str:
    """Return a URL-safe session token with 256 bits of entropy."""
    return secrets.token_urlsafe(32)


def generate_otp_code(digits: int) -> str:
    """Return a uniformly random, zero-padded numeric code of the given length."""
    return str(secrets.randbelow(10**digits)).zfill(digits)


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_session_cookie(response, token: str) -> None:
    """Write the session token as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="strict": never sent on cross-site requests.
    secure: only sent over HTTPS when SECURE_COOKIES=true (set in production).
    max_age: matches the server-side session expiry so both lapse together.
    """
    response.set_cookie(
        _settings.session_cookie_name,
        value=token,
        httponly=True,
        samesite="strict",
        secure=_settings.secure_cookies,
        max_age=_settings.session_expire_seconds,
    )


def clear_session_cookie(response) -> None:
    response.delete_cookie(
        _settings.session_cookie_name,
        httponly=True,
        samesite="strict",
        secure=_settings.secure_cookies,
    )
