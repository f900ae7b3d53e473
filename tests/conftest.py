"""
tests/conftest.py -- Shared test fixtures for Priorly.

This module provides:
  - FakeClock / RecordingMailer: deterministic time and captured mail
  - engine: a file-backed SQLite DB per test (tmp_path)
  - users / sessions / otps / todos: stores on that engine
  - service: AuthService wired to the stores and the recording mailer
  - client: TestClient over the real app with a patched lifespan

Design: file-backed SQLite under tmp_path rather than :memory:. TestClient
runs sync route handlers in a thread pool and the race tests start their own
threads; every connection must see the same database, and WAL + busy
timeout (core/database.py) only apply to a real file.

DEBUG and ALLOWED_HOSTS must be set before any api/auth/core import so
get_settings() auto-generates SECRET_KEY and TrustedHostMiddleware accepts
the TestClient's default "testserver" host.
"""

from __future__ import annotations

import asyncio
import os
import threading
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: Set env before any auth/core import -- settings are cached and
# api.main reads them at import time.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost", "127.0.0.1"]')

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine

from api.limiter import limiter
from api.main import app, attach_state, build_auth_service
from auth.service import AuthService
from auth.store import OTPStore, SessionStore, UserStore
from auth.tokens import hash_password
from core.config import get_settings
from core.database import create_db_engine
from todo.store import TodoStore

STRONG_PASSWORD = "Passw0rd!"
NEW_PASSWORD = "N3w-Secret?"

# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


class FakeClock:
    """Callable clock for the stores. Starts at a fixed epoch; advance() moves it."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingMailer:
    """Mailer that records (to_address, template_id, context) instead of sending."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str, dict]] = []
        self._lock = threading.Lock()

    def send(self, to_address: str, template_id: str, context: dict) -> None:
        with self._lock:
            self.sent.append((to_address, template_id, dict(context)))

    def close(self) -> None:
        pass

    def templates_to(self, to_address: str) -> list[str]:
        return [tid for to, tid, _ in self.sent if to == to_address]

    def last_code(self, to_address: str) -> str:
        for to, _tid, ctx in reversed(self.sent):
            if to == to_address and "code" in ctx:
                return ctx["code"]
        raise AssertionError(f"no code mailed to {to_address}")


# ---------------------------------------------------------------------------
# Store fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def engine(tmp_path) -> Generator[Engine, None, None]:
    eng = create_db_engine(f"sqlite:///{tmp_path / 'priorly_test.db'}")
    yield eng
    eng.dispose()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture
def users(engine) -> UserStore:
    return UserStore(engine)


@pytest.fixture
def sessions(engine, clock) -> SessionStore:
    return SessionStore(engine, ttl_seconds=3 * 24 * 3600, clock=clock)


@pytest.fixture
def otps(engine, clock) -> OTPStore:
    return OTPStore(
        engine,
        digits=6,
        ttl_seconds=600,
        cooldown_seconds=60,
        generation_timeout=2.0,
        clock=clock,
    )


@pytest.fixture
def todos(engine) -> TodoStore:
    return TodoStore(engine)


@pytest.fixture
def service(users, sessions, otps, todos, mailer) -> AuthService:
    return AuthService(users, sessions, otps, todos, mailer, get_settings())


@pytest.fixture
def make_user(users):
    """Create a user with a real bcrypt hash. Returns the User."""

    def _make(email: str = "ada@example.com", password: str = STRONG_PASSWORD, name: str = "Ada Lovelace"):
        return users.create_user(email, hash_password(password), name)

    return _make


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------


def _patch_lifespan(engine: Engine, service: AuthService):
    """Return an async context manager that replaces the real lifespan.

    Wires the test engine and service into app.state so routes hit the
    isolated test DB. The purge_task is a long-sleeping coroutine so shutdown
    has a real asyncio.Task to cancel.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        attach_state(app, engine, service)
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


@pytest.fixture
def api_service(engine, mailer) -> AuthService:
    """AuthService built exactly as the lifespan builds it, with the recording mailer."""
    return build_auth_service(engine, get_settings(), mailer)


@pytest.fixture
def client(engine, api_service) -> Generator[TestClient, None, None]:
    """TestClient over the real app. The per-IP rate limiter is off by default."""
    app.router.lifespan_context = _patch_lifespan(engine, api_service)
    limiter.enabled = False
    with TestClient(app, raise_server_exceptions=True) as c:
        yield c
    limiter.enabled = True
    limiter.reset()


@pytest.fixture
def signed_up(client, mailer) -> dict:
    """Run the two-step signup over HTTP. Returns the verify response JSON.

    The client's cookie jar now holds the session cookie.
    """
    resp = client.post(
        "/api/v1/auth/signup",
        json={
            "name": "Ada Lovelace",
            "email": "ada@example.com",
            "password": STRONG_PASSWORD,
            "confirm_password": STRONG_PASSWORD,
        },
    )
    assert resp.status_code == 202, resp.text
    code = mailer.last_code("ada@example.com")
    resp = client.post("/api/v1/auth/signup/verify", json={"email": "ada@example.com", "code": code})
    assert resp.status_code == 201, resp.text
    return resp.json()
