"""
api/limiter.py -- Shared slowapi rate limiter instance.

Import this in api/main.py (to mount as middleware) and in the route modules
(to apply per-route limits with @limiter.limit()).

This is a coarse per-IP guard in front of the login and code-issuing
endpoints. The per-email code cooldown is enforced separately by OTPStore
and holds across processes because it lives in the database.

Using a single shared instance ensures all routes share the same in-memory
counter store.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

_settings = get_settings()

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")

LOGIN_LIMIT = _settings.login_rate_limit
OTP_LIMIT = _settings.otp_rate_limit
