"""Unit tests for auth/store.py SessionStore -- the session registry.

Covers:
- create -> resolve returns the user id; tokens are opaque and unique
- create for a missing user raises UnknownUser
- resolve returns None for unknown, expired, and revoked tokens
- resolve returns None once the user row is gone, before any session cleanup
- revoke_all leaves zero resolvable sessions; except_token survives
- list_for_user and purge_expired
"""

from __future__ import annotations

import pytest
from sqlalchemy import select

from auth.errors import UnknownUser
from auth.store import SessionStore, _sessions

THREE_DAYS = 3 * 24 * 3600


def _row_exists(sessions: SessionStore, token: str) -> bool:
    with sessions.engine.connect() as conn:
        return conn.execute(select(_sessions.c.id).where(_sessions.c.id == token)).first() is not None


def test_create_then_resolve(sessions: SessionStore, make_user) -> None:
    user = make_user()
    session = sessions.create(user.id)
    assert sessions.resolve(session.id) == user.id
    assert session.expires_at - session.created_at == THREE_DAYS
    # 32 bytes of token_urlsafe -> 43 characters
    assert len(session.id) >= 43


def test_tokens_are_unique_per_session(sessions: SessionStore, make_user) -> None:
    user = make_user()
    tokens = {sessions.create(user.id).id for _ in range(5)}
    assert len(tokens) == 5


def test_create_for_missing_user_raises(sessions: SessionStore) -> None:
    with pytest.raises(UnknownUser):
        sessions.create(9999)


class TestResolve:
    def test_unknown_token(self, sessions: SessionStore) -> None:
        assert sessions.resolve("not-a-token") is None
        assert sessions.resolve("") is None

    def test_expired_session(self, sessions: SessionStore, make_user, clock) -> None:
        session = sessions.create(make_user().id)
        clock.advance(THREE_DAYS - 1)
        assert sessions.resolve(session.id) is not None
        clock.advance(1)
        assert sessions.resolve(session.id) is None

    def test_revoked_session(self, sessions: SessionStore, make_user) -> None:
        session = sessions.create(make_user().id)
        sessions.revoke(session.id)
        assert sessions.resolve(session.id) is None
        # Idempotent
        sessions.revoke(session.id)

    def test_deleted_user_session_never_resolves(self, sessions: SessionStore, users, make_user) -> None:
        user = make_user()
        session = sessions.create(user.id)
        users.delete_user(user.id)
        # The session row still exists; the join against users refuses it.
        assert _row_exists(sessions, session.id)
        assert sessions.resolve(session.id) is None


class TestRevokeAll:
    def test_revoke_all_leaves_nothing_resolvable(self, sessions: SessionStore, make_user) -> None:
        user = make_user()
        tokens = [sessions.create(user.id).id for _ in range(3)]
        assert sessions.revoke_all(user.id) == 3
        assert all(sessions.resolve(t) is None for t in tokens)
        assert sessions.list_for_user(user.id) == []

    def test_except_token_survives(self, sessions: SessionStore, make_user) -> None:
        user = make_user()
        keep = sessions.create(user.id)
        drop = sessions.create(user.id)
        assert sessions.revoke_all(user.id, except_token=keep.id) == 1
        assert sessions.resolve(keep.id) == user.id
        assert sessions.resolve(drop.id) is None

    def test_other_users_untouched(self, sessions: SessionStore, make_user) -> None:
        ada = make_user("ada@example.com")
        bob = make_user("bob@example.com", name="Bob Builder")
        bob_session = sessions.create(bob.id)
        sessions.create(ada.id)
        sessions.revoke_all(ada.id)
        assert sessions.resolve(bob_session.id) == bob.id


def test_list_for_user_newest_first_and_unexpired(sessions: SessionStore, make_user, clock) -> None:
    user = make_user()
    old = sessions.create(user.id)
    clock.advance(10)
    new = sessions.create(user.id)
    assert [s.id for s in sessions.list_for_user(user.id)] == [new.id, old.id]

    clock.advance(THREE_DAYS - 5)
    assert [s.id for s in sessions.list_for_user(user.id)] == [new.id]


def test_purge_expired(sessions: SessionStore, make_user, clock) -> None:
    user = make_user()
    old = sessions.create(user.id)
    clock.advance(THREE_DAYS)
    fresh = sessions.create(user.id)
    assert sessions.purge_expired() == 1
    assert not _row_exists(sessions, old.id)
    assert _row_exists(sessions, fresh.id)
