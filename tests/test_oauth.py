"""
tests/test_oauth.py -- Google sign-in: claim extraction and the callback route.

Google is never contacted. The callback tests swap the authlib client for a
stub whose authorize_access_token() returns a canned OIDC token response.

Coverage:
  - get_oauth_user_info() accepts only a verified email claim
  - The callback redirects to {CLIENT_URI}/login?error=oauth_failed for an
    unverified email, a failed token exchange, or an unconfigured provider
  - A verified email opens a session and sets the "sid" cookie
"""

from __future__ import annotations

import pytest
from authlib.integrations.starlette_client import OAuthError
from fastapi.testclient import TestClient

from api.routes.v1 import oauth as oauth_routes
from auth.oauth import get_oauth_user_info

CALLBACK = "/api/v1/oauth/google/callback"
FAILED = "http://localhost:3000/login?error=oauth_failed"


def _token(**claims) -> dict:
    return {"access_token": "at", "userinfo": {"email": "grace@example.com", **claims}}


class TestUserInfo:
    def test_verified_email(self) -> None:
        email, name = get_oauth_user_info(_token(email_verified=True, name="Grace Hopper"))
        assert (email, name) == ("grace@example.com", "Grace Hopper")

    def test_name_falls_back_to_local_part(self) -> None:
        assert get_oauth_user_info(_token(email_verified=True))[1] == "grace"

    @pytest.mark.parametrize(
        "token",
        [
            _token(email_verified=False),
            _token(),  # claim missing
            {"access_token": "at"},
            {"access_token": "at", "userinfo": {"email_verified": True}},
        ],
    )
    def test_rejected(self, token: dict) -> None:
        with pytest.raises(ValueError):
            get_oauth_user_info(token)


class _StubGoogle:
    def __init__(self, token: dict | None = None, error: Exception | None = None) -> None:
        self.token = token
        self.error = error

    async def authorize_access_token(self, request):
        if self.error is not None:
            raise self.error
        return self.token


@pytest.fixture
def google(monkeypatch):
    """Report Google as configured and return a setter for the stub client."""
    monkeypatch.setattr(oauth_routes, "get_enabled_providers", lambda: [{"name": "google", "label": "Google"}])

    def _use(stub: _StubGoogle) -> None:
        monkeypatch.setattr(oauth_routes.oauth_registry, "create_client", lambda name: stub)

    return _use


class TestCallback:
    def test_unverified_email_redirects_to_failure(self, client: TestClient, google, api_service) -> None:
        google(_StubGoogle(token=_token(email_verified=False)))
        resp = client.get(CALLBACK, follow_redirects=False)
        assert resp.status_code == 302
        assert resp.headers["location"] == FAILED
        assert "sid" not in client.cookies
        assert api_service.users.find_by_email("grace@example.com") is None

    def test_token_exchange_error_redirects_to_failure(self, client: TestClient, google) -> None:
        google(_StubGoogle(error=OAuthError(error="mismatching_state")))
        resp = client.get(CALLBACK, follow_redirects=False)
        assert resp.status_code == 302
        assert resp.headers["location"] == FAILED

    def test_unconfigured_provider_redirects_to_failure(self, client: TestClient) -> None:
        resp = client.get(CALLBACK, follow_redirects=False)
        assert resp.status_code == 302
        assert resp.headers["location"] == FAILED

    def test_verified_email_opens_session(self, client: TestClient, google, api_service) -> None:
        google(_StubGoogle(token=_token(email_verified=True, name="Grace Hopper")))
        resp = client.get(CALLBACK, follow_redirects=False)
        assert resp.status_code == 302
        assert resp.headers["location"] == "http://localhost:3000"
        assert resp.headers["cache-control"] == "no-store"

        token = client.cookies.get("sid")
        assert token
        user = api_service.resolve_user(token)
        assert user.email == "grace@example.com"
        assert user.password_hash is None
