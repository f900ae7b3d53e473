"""
auth/schemas.py -- Typed request structs for the auth flows.

Every AuthService entry point takes one of these Pydantic v2 models, so the
shape and format rules below run before any business logic does. The API
layer uses the same classes as FastAPI request bodies; a failure becomes a
422 with one message per offending field (see field_errors()).

Format rules:
  email     -- local@domain.tld, max 100 chars, compared lowercase
  password  -- 8..64 chars with a lowercase letter, an uppercase letter, a
               digit, and a special character. The 64 cap keeps bcrypt below
               its 72-byte truncation point.
  name      -- 3..120 chars, words of letters optionally joined by dots
  code      -- 4..9 digits, sent as a string (leading zeros matter)

Login deliberately does NOT apply the password format rules: a malformed
password must fail with invalid_credentials like any other wrong password.

Layer rule: no imports from api/ or todo/.
"""

from __future__ import annotations

import re
from typing import Annotated

from pydantic import AfterValidator, BaseModel, BeforeValidator, Field, ValidationInfo, field_validator

_EMAIL_RE = re.compile(r"^[\w.+-]+@([\w-]+\.)+[\w-]{2,24}$")
_NAME_RE = re.compile(r"^[A-Za-z]+([.][A-Za-z]+)*([ ][A-Za-z]+([.][A-Za-z]+)*)*$")
_SPECIAL_RE = re.compile(r"[!@#$%^&*()_\-+={}\[\]|;:'\",.<>?/~\\`]")
_CODE_RE = re.compile(r"^\d{4,9}$")


# ---------------------------------------------------------------------------
# Field validators
# ---------------------------------------------------------------------------


def _check_email(value: str) -> str:
    value = value.strip().lower()
    if len(value) > 100:
        raise ValueError("Email cannot be more than 100 characters long.")
    if not _EMAIL_RE.match(value):
        raise ValueError("Please enter a valid email.")
    return value


def _check_password(value: str) -> str:
    if len(value) < 8:
        raise ValueError("Password must be at least 8 characters long.")
    if len(value) > 64:
        raise ValueError("Password cannot be more than 64 characters long.")
    if not re.search(r"[a-z]", value):
        raise ValueError("Password must contain at least one lowercase letter.")
    if not re.search(r"[A-Z]", value):
        raise ValueError("Password must contain at least one uppercase letter.")
    if not re.search(r"\d", value):
        raise ValueError("Password must contain at least one digit.")
    if not _SPECIAL_RE.search(value):
        raise ValueError("Password must contain at least one special character.")
    return value


def _check_name(value: str) -> str:
    value = value.strip()
    if len(value) < 3:
        raise ValueError("Name should contain at least 3 characters.")
    if len(value) > 120:
        raise ValueError("Name cannot be more than 120 characters long.")
    if not _NAME_RE.match(value):
        raise ValueError("Please enter a valid name. Name can only contain letters, spaces and dots (.).")
    return value


def _coerce_code(value):
    # Codes are strings; accept a bare JSON integer rather than rejecting it.
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


def _check_code(value: str) -> str:
    value = value.strip()
    if not _CODE_RE.match(value):
        raise ValueError("Please enter a valid code.")
    return value


EmailStr = Annotated[str, AfterValidator(_check_email)]
Password = Annotated[str, AfterValidator(_check_password)]
Name = Annotated[str, AfterValidator(_check_name)]
Code = Annotated[str, BeforeValidator(_coerce_code), AfterValidator(_check_code)]


class _NewPassword(BaseModel):
    """password + confirm_password, which must match."""

    password: Password
    confirm_password: str

    @field_validator("confirm_password")
    @classmethod
    def passwords_match(cls, value: str, info: ValidationInfo) -> str:
        # info.data lacks "password" when that field already failed; its own
        # error is enough in that case.
        if "password" in info.data and value != info.data["password"]:
            raise ValueError("Passwords do not match.")
        return value


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class SignupRequest(_NewPassword):
    name: Name
    email: EmailStr


class VerifyCodeRequest(BaseModel):
    """Completes signup: the code mailed by SignupRequest plus the same email."""

    email: EmailStr
    code: Code


class LoginRequest(BaseModel):
    email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=255)


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(_NewPassword):
    email: EmailStr
    code: Code


class ChangePasswordRequest(_NewPassword):
    current_password: str = Field(min_length=1, max_length=255)


class ChangeNameRequest(BaseModel):
    name: Name


class ChangeEmailRequest(BaseModel):
    """Step one of an email change: password re-confirmation + new address."""

    new_email: EmailStr
    password: str = Field(min_length=1, max_length=255)


class ConfirmEmailChangeRequest(ChangeEmailRequest):
    """Step two: the same fields again plus the code sent to new_email."""

    code: Code


class DeleteAccountRequest(BaseModel):
    password: str = Field(min_length=1, max_length=255)


# ---------------------------------------------------------------------------
# Error formatting
# ---------------------------------------------------------------------------


def field_errors(errors: list[dict]) -> dict[str, str]:
    """Collapse Pydantic error dicts into {field: message}, first error wins.

    The "Value error, " prefix Pydantic adds to ValueError messages is
    dropped so clients can show the message as-is. Location prefixes like
    "body" (added by FastAPI) are skipped.
    """
    result: dict[str, str] = {}
    for err in errors:
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        key = ".".join(loc) or "__root__"
        message = str(err.get("msg", "Invalid value."))
        if message.startswith("Value error, "):
            message = message[len("Value error, ") :]
        result.setdefault(key, message)
    return result
