"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Mirrors the approach
in todo/models.py -- dataclasses own domain shape; stores and the service do
the work.

OTPRecord and Session are frozen: the stores expose create and delete for
them, never update, and the frozen dataclass keeps callers from mutating a
copy and assuming the change was persisted.

Layer rule: no imports from api/ or todo/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class OTPOperation(str, Enum):
    """The flow a one-time code was issued for.

    A code is only accepted by the endpoint whose operation matches the tag
    stored with it -- a SIGNUP code cannot reset a password.
    """

    SIGNUP = "signup"
    CHANGE_EMAIL = "change_email"
    FORGOT_PASSWORD = "forgot_password"


@dataclass
class User:
    """An account holder.

    email is always stored lowercase; lookups lowercase their input so the
    address is unique case-insensitively.

    password_hash is None for OAuth-only users (they have no local password
    and cannot log in with one).
    """

    email: str
    name: str = ""
    password_hash: str | None = None  # None = OAuth-only user
    id: int | None = None
    created_at: float | None = None  # epoch seconds, set by store on insert
    updated_at: float | None = None


@dataclass(frozen=True)
class OTPRecord:
    """A pending one-time code bound to an email and an operation.

    payload depends on the operation:
      SIGNUP           {"name": str, "password_hash": str}
      CHANGE_EMAIL     {"user_id": int}   (email is the NEW address)
      FORGOT_PASSWORD  {}
    """

    code: str
    email: str
    operation: OTPOperation
    issued_at: float
    expires_at: float
    payload: dict = field(default_factory=dict)
    id: int | None = None

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at


@dataclass(frozen=True)
class Session:
    """An authenticated session. id is the opaque token handed to the client."""

    id: str
    user_id: int
    created_at: float
    expires_at: float
