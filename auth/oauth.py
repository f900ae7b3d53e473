"""
auth/oauth.py -- Authlib OAuth/OIDC provider configuration.

Reads configuration from core.config.get_settings() at module load. Google
is registered only when both its client ID and secret are configured;
get_enabled_providers() tells the client whether to render the button.

Security notes:
  Email verification is mandatory. get_oauth_user_info() raises ValueError
  if the provider does not confirm the email is verified -- an unverified
  address could belong to someone else, and OAuth login skips the emailed
  code that password signup requires.

  The OAuth state parameter (CSRF protection) is handled by authlib via
  Starlette SessionMiddleware: the state is stored in the signed session
  cookie between the authorization redirect and the callback.

Layer rule: no imports from api/ or todo/. Import from core/ is allowed --
core/ is the kernel layer.
"""

from __future__ import annotations

import logging

from authlib.integrations.starlette_client import OAuth

from core.config import get_settings

logger = logging.getLogger("priorly.auth.oauth")

# ---------------------------------------------------------------------------
# Authlib OAuth registry
# ---------------------------------------------------------------------------

oauth = OAuth()

_cfg = get_settings()

# Google -- OIDC discovery
if _cfg.google_client_id and _cfg.google_client_secret:
    oauth.register(
        name="google",
        client_id=_cfg.google_client_id,
        client_secret=_cfg.google_client_secret,
        server_metadata_url="https://accounts.google.com/.well-known/openid-configuration",
        client_kwargs={"scope": "openid email profile"},
    )
    logger.info("Google OAuth provider registered")


# ---------------------------------------------------------------------------
# Provider metadata
# ---------------------------------------------------------------------------


def get_enabled_providers() -> list[dict]:
    """Return [{"name": ..., "label": ...}] for every configured provider."""
    cfg = get_settings()
    providers: list[dict] = []
    if cfg.google_client_id and cfg.google_client_secret:
        providers.append({"name": "google", "label": "Google"})
    return providers


# ---------------------------------------------------------------------------
# Email / name extraction
# ---------------------------------------------------------------------------


def get_oauth_user_info(token: dict, provider: str = "google") -> tuple[str, str]:
    """Extract (email, display_name) from an OIDC token response.

    The email claim is only accepted when email_verified is True. Providers
    that omit email_verified are treated as unverified.

    Raises:
        ValueError: If a verified email cannot be confirmed.
    """
    userinfo = token.get("userinfo")
    if not userinfo:
        raise ValueError(f"{provider} OAuth: no userinfo in token response")

    if not userinfo.get("email_verified", False):
        raise ValueError(
            f"{provider} OAuth: email is not verified. "
            "The provider must confirm email ownership before login is allowed."
        )

    email = userinfo.get("email")
    if not email:
        raise ValueError(f"{provider} OAuth: missing email claim in userinfo")

    name = userinfo.get("name") or userinfo.get("given_name") or email.split("@", 1)[0]
    return email, name
