"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

The session token is read from two places, in priority order:
  1. The session cookie ("sid") -- set by the login/signup responses.
  2. Authorization: Bearer <token> header -- API clients and mobile apps.

Both carry the same opaque token; AuthService.resolve_user() turns it into a
User or None. Expired tokens, revoked tokens, and tokens whose user has been
deleted all look the same here.

try_get_current_user() is the soft variant (returns None on failure).
get_current_user() wraps it and raises NotAuthenticated (HTTP 401 via the
AuthError handler in api/main.py).

Layer rule: no imports from api/ or todo/.
  auth/dependencies.py may import from fastapi (for Request) because this
  module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import Request

from auth.errors import NotAuthenticated
from auth.models import User
from core.config import get_settings


def get_session_token(request: Request) -> str | None:
    """Return the raw session token from the cookie or Bearer header, or None."""
    token: str | None = request.cookies.get(get_settings().session_cookie_name)
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:].strip()
    return token or None


def try_get_current_user(request: Request) -> User | None:
    """Resolve the request's session to a User. Never raises for bad tokens."""
    token = get_session_token(request)
    if token is None:
        return None
    return request.app.state.auth_service.resolve_user(token)


def get_current_user(request: Request) -> User:
    """Require authentication.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(user: User = Depends(get_current_user)): ...
    """
    user = try_get_current_user(request)
    if user is None:
        raise NotAuthenticated()
    return user
