"""
api/routes/v1/oauth.py -- Google sign-in.

Routes:
  GET /api/v1/oauth/providers        -- list enabled OAuth providers (public)
  GET /api/v1/oauth/google           -- redirect to Google's consent screen
  GET /api/v1/oauth/google/callback  -- exchange code, log in, redirect to the client

The callback ends in the same place a password login does: a row from
SessionStore.create and the session cookie. A verified Google email that has
no account yet gets an OAuth-only account (no local password).

Every failure redirects to {CLIENT_URI}/login?error=oauth_failed rather than
returning JSON, because the browser is mid-redirect and there is no script
on the page to read an error body.
"""

from __future__ import annotations

import logging

from authlib.integrations.starlette_client import OAuthError
from fastapi import APIRouter, Request
from fastapi.responses import RedirectResponse
from starlette.concurrency import run_in_threadpool

from api.models import OAuthProviderInfo
from auth.errors import AuthError
from auth.oauth import get_enabled_providers, get_oauth_user_info
from auth.oauth import oauth as oauth_registry
from auth.service import AuthService
from auth.tokens import set_session_cookie
from core.config import get_settings

logger = logging.getLogger("priorly.api.oauth")

router = APIRouter()


def _failure_redirect() -> RedirectResponse:
    return RedirectResponse(f"{get_settings().client_uri}/login?error=oauth_failed", status_code=302)


def _google_enabled() -> bool:
    return any(p["name"] == "google" for p in get_enabled_providers())


@router.get("/oauth/providers", response_model=list[OAuthProviderInfo])
async def list_providers() -> list[OAuthProviderInfo]:
    """Return the configured OAuth providers. Empty when none are set up."""
    return [OAuthProviderInfo(**p) for p in get_enabled_providers()]


@router.get("/oauth/google")
async def google_redirect(request: Request) -> RedirectResponse:
    """Redirect the browser to Google's authorization page."""
    if not _google_enabled():
        return _failure_redirect()
    client = oauth_registry.create_client("google")
    redirect_uri = str(request.url_for("google_callback"))
    return await client.authorize_redirect(request, redirect_uri)


@router.get("/oauth/google/callback", name="google_callback")
async def google_callback(request: Request) -> RedirectResponse:
    """Handle Google's callback, open a session, and send the browser home.

    Flow:
      1. Exchange the authorization code (authlib checks the state).
      2. Extract the verified email -- ValueError if unverified.
      3. Find or create the user and open a session.
      4. Set the cookie and redirect to CLIENT_URI.
    """
    if not _google_enabled():
        return _failure_redirect()
    client = oauth_registry.create_client("google")

    # Step 1: Exchange code for token
    try:
        token = await client.authorize_access_token(request)
    except OAuthError:
        logger.exception("Google token exchange failed")
        return _failure_redirect()

    # Step 2: Verified email only
    try:
        email, name = get_oauth_user_info(token, "google")
    except ValueError:
        logger.warning("OAuth login rejected: unverified or missing email from Google")
        return _failure_redirect()

    # Step 3: Same session primitive as password login
    service: AuthService = request.app.state.auth_service
    try:
        _user, session = await run_in_threadpool(service.oauth_login, email, name)
    except AuthError:
        logger.exception("OAuth login failed after token exchange")
        return _failure_redirect()

    # Step 4
    resp = RedirectResponse(get_settings().client_uri, status_code=302)
    set_session_cookie(resp, session.id)
    resp.headers["Cache-Control"] = "no-store"
    return resp
