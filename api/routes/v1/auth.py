"""
api/routes/v1/auth.py -- Signup, login, logout, forgot-password, email change,
account deletion, and session listing.

Routes:
  POST /api/v1/auth/signup               -- mail a SIGNUP code (202)
  POST /api/v1/auth/signup/verify        -- consume code, create user, set session cookie (201)
  POST /api/v1/auth/login                -- password login; sets session cookie
  POST /api/v1/auth/logout               -- revoke this session; clears cookie
  POST /api/v1/auth/logout/all           -- revoke every session of the user (requires auth)
  POST /api/v1/auth/forgot               -- mail a FORGOT_PASSWORD code (202, silent for unknown emails)
  POST /api/v1/auth/forgot/verify        -- consume code, set new password, revoke all sessions
  POST /api/v1/auth/change-email         -- mail a CHANGE_EMAIL code to the new address (requires auth)
  POST /api/v1/auth/change-email/verify  -- consume code, switch email (requires auth)
  POST /api/v1/auth/delete               -- delete account and its to-do items (requires auth + password)
  GET  /api/v1/auth/sessions             -- list active sessions (requires auth)

Route handlers are thin: parse the body (auth/schemas.py), call one
AuthService method, shape the response. AuthError raised anywhere below is
rendered by the handler in api/main.py.

Security:
  POST /login is rate-limited per IP (LOGIN_LIMIT); every code-issuing route
  is rate-limited per IP (OTP_LIMIT) on top of the per-email cooldown.
  Cache-Control: no-store on every response that carries a session token.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import LOGIN_LIMIT, OTP_LIMIT, limiter
from api.models import (
    AuthResponse,
    CodeSentResponse,
    LogoutAllResponse,
    MessageResponse,
    SessionInfo,
    UserResponse,
)
from auth.dependencies import get_current_user, get_session_token
from auth.models import Session, User
from auth.schemas import (
    ChangeEmailRequest,
    ConfirmEmailChangeRequest,
    DeleteAccountRequest,
    ForgotPasswordRequest,
    LoginRequest,
    ResetPasswordRequest,
    SignupRequest,
    VerifyCodeRequest,
)
from auth.service import AuthService
from auth.tokens import clear_session_cookie, set_session_cookie

# Auth policy:
# - POST /auth/signup, /auth/signup/verify:         public
# - POST /auth/login:                               public
# - POST /auth/logout:                              public -- revoking an unknown token is a no-op
# - POST /auth/forgot, /auth/forgot/verify:         public
# - POST /auth/logout/all:                          requires auth (get_current_user)
# - POST /auth/change-email, /change-email/verify:  requires auth + password re-check
# - POST /auth/delete:                              requires auth + password re-check
# - GET  /auth/sessions:                            requires auth
router = APIRouter()


def _service(request: Request) -> AuthService:
    return request.app.state.auth_service


def _code_sent(service: AuthService, message: str) -> CodeSentResponse:
    return CodeSentResponse(
        message=message,
        expires_in=service.settings.otp_ttl_seconds,
        resend_after=service.settings.otp_cooldown_seconds,
    )


def _session_response(user: User, session: Session, status_code: int = 200) -> JSONResponse:
    resp = JSONResponse(status_code=status_code, content=AuthResponse.build(user, session).model_dump())
    set_session_cookie(resp, session.id)
    resp.headers["Cache-Control"] = "no-store"
    return resp


def _logged_out_response(content: dict) -> JSONResponse:
    resp = JSONResponse(content=content)
    clear_session_cookie(resp)
    return resp


# ---------------------------------------------------------------------------
# Signup
# ---------------------------------------------------------------------------


@router.post("/auth/signup", response_model=CodeSentResponse, status_code=202)
@limiter.limit(OTP_LIMIT)  # must be BELOW @router so the registered endpoint is the limited one
def signup(request: Request, body: SignupRequest) -> CodeSentResponse:
    """Validate the signup form and mail a verification code.

    No account exists until /auth/signup/verify succeeds.
    """
    service = _service(request)
    service.request_signup(body)
    return _code_sent(service, "Verification code sent. Please check your email.")


@router.post("/auth/signup/verify", response_model=AuthResponse, status_code=201)
def verify_signup(request: Request, body: VerifyCodeRequest) -> JSONResponse:
    """Consume the signup code, create the account, and log it in."""
    user, session = _service(request).complete_signup(body)
    return _session_response(user, session, status_code=201)


# ---------------------------------------------------------------------------
# Login / logout
# ---------------------------------------------------------------------------


@router.post("/auth/login", response_model=AuthResponse)
@limiter.limit(LOGIN_LIMIT)  # brute-force mitigation
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; set the session cookie.

    Wrong password and unknown email return the same invalid_credentials
    error after the same bcrypt work.
    """
    user, session = _service(request).login(body.email, body.password)
    return _session_response(user, session)


@router.post("/auth/logout", response_model=MessageResponse)
def logout(request: Request) -> JSONResponse:
    """Revoke the presented session (if any) and clear the cookie."""
    token = get_session_token(request)
    if token:
        _service(request).logout(token)
    return _logged_out_response({"message": "Logged out."})


@router.post("/auth/logout/all", response_model=LogoutAllResponse)
def logout_all(request: Request, current_user: User = Depends(get_current_user)) -> JSONResponse:
    """Revoke every session of the current user, this one included."""
    revoked = _service(request).logout_all(current_user.id)
    return _logged_out_response({"message": "Logged out of all sessions.", "revoked": revoked})


@router.get("/auth/sessions", response_model=list[SessionInfo])
def list_sessions(request: Request, current_user: User = Depends(get_current_user)) -> list[SessionInfo]:
    """List the current user's active sessions, newest first."""
    current = get_session_token(request)
    return [
        SessionInfo(
            token_prefix=s.id[:8],
            created_at=s.created_at,
            expires_at=s.expires_at,
            current=s.id == current,
        )
        for s in _service(request).list_sessions(current_user.id)
    ]


# ---------------------------------------------------------------------------
# Forgot password
# ---------------------------------------------------------------------------


@router.post("/auth/forgot", response_model=CodeSentResponse, status_code=202)
@limiter.limit(OTP_LIMIT)
def forgot_password(request: Request, body: ForgotPasswordRequest) -> CodeSentResponse:
    """Mail a reset code. The response is identical whether or not the email exists."""
    service = _service(request)
    service.request_password_reset(body.email)
    return _code_sent(service, "If an account exists for that email, a reset code has been sent.")


@router.post("/auth/forgot/verify", response_model=MessageResponse)
def reset_password(request: Request, body: ResetPasswordRequest) -> JSONResponse:
    """Consume the reset code and set the new password.

    Every session of the account is revoked, including the caller's if it
    had one, so the cookie is cleared too.
    """
    _service(request).complete_password_reset(body)
    return _logged_out_response({"message": "Password has been reset. Please log in."})


# ---------------------------------------------------------------------------
# Change email (authenticated)
# ---------------------------------------------------------------------------


@router.post("/auth/change-email", response_model=CodeSentResponse, status_code=202)
@limiter.limit(OTP_LIMIT)
def change_email(
    request: Request,
    body: ChangeEmailRequest,
    current_user: User = Depends(get_current_user),
) -> CodeSentResponse:
    """Re-check the password and mail a code to the new address."""
    service = _service(request)
    service.request_email_change(current_user, body)
    return _code_sent(service, "Verification code sent to the new email.")


@router.post("/auth/change-email/verify", response_model=UserResponse)
def verify_change_email(
    request: Request,
    body: ConfirmEmailChangeRequest,
    current_user: User = Depends(get_current_user),
) -> UserResponse:
    """Consume the code and switch the account's login email."""
    updated = _service(request).complete_email_change(current_user, body)
    return UserResponse.from_user(updated)


# ---------------------------------------------------------------------------
# Delete account (authenticated)
# ---------------------------------------------------------------------------


@router.post("/auth/delete", response_model=MessageResponse)
def delete_account(
    request: Request,
    body: DeleteAccountRequest,
    current_user: User = Depends(get_current_user),
) -> JSONResponse:
    """Delete the account, its sessions, and its to-do items."""
    _service(request).delete_account(current_user, body)
    return _logged_out_response({"message": "Account deleted."})
