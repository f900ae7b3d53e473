"""
api/routes/v1/user.py -- Profile endpoints for the logged-in user.

Routes:
  GET   /api/v1/user/me        -- current user info
  PATCH /api/v1/user/name      -- change display name
  POST  /api/v1/user/password  -- change password (current password required)

All routes require auth (get_current_user).

Changing the password revokes every OTHER session of the user; the session
making the request stays valid so the user is not logged out mid-action.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import MessageResponse, UserResponse
from auth.dependencies import get_current_user, get_session_token
from auth.models import User
from auth.schemas import ChangeNameRequest, ChangePasswordRequest

router = APIRouter()


@router.get("/user/me", response_model=UserResponse)
def me(current_user: User = Depends(get_current_user)) -> UserResponse:
    """Return profile information for the currently authenticated user."""
    return UserResponse.from_user(current_user)


@router.patch("/user/name", response_model=UserResponse)
def change_name(
    request: Request,
    body: ChangeNameRequest,
    current_user: User = Depends(get_current_user),
) -> UserResponse:
    updated = request.app.state.auth_service.change_name(current_user, body)
    return UserResponse.from_user(updated)


@router.post("/user/password", response_model=MessageResponse)
def change_password(
    request: Request,
    body: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
) -> MessageResponse:
    revoked = request.app.state.auth_service.change_password(
        current_user, body, current_token=get_session_token(request)
    )
    return MessageResponse(message=f"Password changed. {revoked} other session(s) logged out.")
