"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper (same as todo/store.py).
UserStore, SessionStore, and OTPStore are the repositories; the _row_to_*
functions are the mappers. Service and route code never touches SQL directly.

All three repositories share one Engine (see core/database.py) so that
SessionStore can join sessions against users -- a session whose user row is
gone never resolves, even before the session row itself is deleted.

Security:
  All queries use bound parameters. No f-strings in SQL.

Concurrency (the interesting part):
  UNIQUE(otp_records.email) is the per-email lock. Two concurrent
  request_code() calls for the same email cannot both insert; the loser's
  IntegrityError is mapped to RateLimited. UNIQUE(otp_records.code) keeps
  live codes globally unique; a collision just draws another code.

  consume() claims a code with a conditional DELETE on the record id and
  checks rowcount. Of N concurrent consumers, exactly one sees rowcount == 1.

  otp_records and sessions are create/delete only. There is deliberately no
  update method for either table.

Layer rule: no imports from api/ or todo/.
"""

from __future__ import annotations

import json
import logging
import math
import time
from collections.abc import Callable

from sqlalchemy import Column, Float, Integer, MetaData, String, Table, Text, select
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError

from auth.errors import DuplicateEmail, GenerationTimeout, InvalidOrExpiredOTP, RateLimited, UnknownUser
from auth.models import OTPOperation, OTPRecord, Session, User
from auth.tokens import generate_otp_code, generate_session_token
from core.database import transaction

logger = logging.getLogger("priorly.auth.store")

Clock = Callable[[], float]

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),  # always lowercase
    Column("password_hash", Text),  # NULL for OAuth-only users
    Column("name", String(120), nullable=False, server_default=""),
    Column("created_at", Float, nullable=False),
    Column("updated_at", Float, nullable=False),
    # Never hand a deleted user's id to a new account.
    sqlite_autoincrement=True,
)

_sessions = Table(
    "sessions",
    _metadata,
    Column("id", String(64), primary_key=True),  # opaque token, token_urlsafe(32)
    Column("user_id", Integer, nullable=False, index=True),
    Column("created_at", Float, nullable=False),
    Column("expires_at", Float, nullable=False),
)

_otp_records = Table(
    "otp_records",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("code", String(12), nullable=False, unique=True),
    Column("email", String(255), nullable=False, unique=True),  # one live code per email
    Column("operation", String(30), nullable=False),
    Column("payload", Text, nullable=False, server_default="{}"),  # JSON object
    Column("issued_at", Float, nullable=False),
    Column("expires_at", Float, nullable=False, index=True),
    # Never reuse a deleted id: consume() claims records by id.
    sqlite_autoincrement=True,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def normalize_email(email: str) -> str:
    return email.strip().lower()


# ---------------------------------------------------------------------------
# Credential store
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User records.

    Usage:
        store = UserStore(engine)
        user = store.create_user("a@x.com", hash_password("Passw0rd!"), "Ada")
        store.find_by_email("A@X.com")   # case-insensitive
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        _metadata.create_all(self.engine)

    def create_user(self, email: str, password_hash: str | None, name: str) -> User:
        """Insert a new user and return it with its assigned ID.

        Raises DuplicateEmail if the (lowercased) email is already registered.
        The UNIQUE index is the authority; a pre-check in the caller only
        gives a friendlier early answer.
        """
        now = time.time()
        email = normalize_email(email)
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    _users.insert().values(
                        email=email,
                        password_hash=password_hash,
                        name=name,
                        created_at=now,
                        updated_at=now,
                    )
                )
                user_id = result.inserted_primary_key[0]
        except IntegrityError as exc:
            raise DuplicateEmail() from exc
        return User(id=user_id, email=email, name=name, password_hash=password_hash, created_at=now, updated_at=now)

    def find_by_email(self, email: str) -> User | None:
        """Look up a user by email (case-insensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == normalize_email(email))).fetchone()
        return _row_to_user(row) if row is not None else None

    def find_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def update_password(self, user_id: int, new_hash: str) -> bool:
        """Replace the stored hash. Callers hash first; plaintext never reaches here."""
        return self._update(user_id, password_hash=new_hash)

    def update_email(self, user_id: int, new_email: str) -> bool:
        """Change the login email. Raises DuplicateEmail if it is taken."""
        try:
            return self._update(user_id, email=normalize_email(new_email))
        except IntegrityError as exc:
            raise DuplicateEmail() from exc

    def update_name(self, user_id: int, new_name: str) -> bool:
        return self._update(user_id, name=new_name)

    def delete_user(self, user_id: int, conn: Connection | None = None) -> bool:
        """Delete the user row. Returns True if deleted, False if not found.

        Sessions and to-dos are NOT touched here; AuthService.delete_account
        removes them in the same transaction by passing conn to each store.
        """
        with transaction(self.engine, conn) as c:
            result = c.execute(_users.delete().where(_users.c.id == user_id))
        return result.rowcount > 0

    def _update(self, user_id: int, **fields) -> bool:
        fields["updated_at"] = time.time()
        with self.engine.begin() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**fields))
        return result.rowcount > 0


# ---------------------------------------------------------------------------
# Session registry
# ---------------------------------------------------------------------------


class SessionStore:
    """Repository for Session records. Multi-session: a user may hold many.

    Usage:
        sessions = SessionStore(engine, ttl_seconds=3 * 24 * 3600)
        session = sessions.create(user.id)
        sessions.resolve(session.id)     # -> user.id
        sessions.revoke_all(user.id)
    """

    def __init__(self, engine: Engine, ttl_seconds: int, clock: Clock = time.time) -> None:
        self.engine = engine
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        _metadata.create_all(self.engine)

    def create(self, user_id: int) -> Session:
        """Issue a new session for user_id.

        Raises UnknownUser if the user does not exist. The existence check and
        the insert share one transaction.
        """
        now = self._clock()
        session = Session(
            id=generate_session_token(),
            user_id=user_id,
            created_at=now,
            expires_at=now + self.ttl_seconds,
        )
        with self.engine.begin() as conn:
            exists = conn.execute(select(_users.c.id).where(_users.c.id == user_id)).first()
            if exists is None:
                raise UnknownUser()
            conn.execute(
                _sessions.insert().values(
                    id=session.id,
                    user_id=session.user_id,
                    created_at=session.created_at,
                    expires_at=session.expires_at,
                )
            )
        return session

    def resolve(self, token: str) -> int | None:
        """Return the user_id behind token, or None.

        None covers every invalid case alike: unknown token, expired session,
        and a session whose user has been deleted.
        """
        if not token:
            return None
        stmt = (
            select(_sessions.c.user_id)
            .select_from(_sessions.join(_users, _users.c.id == _sessions.c.user_id))
            .where((_sessions.c.id == token) & (_sessions.c.expires_at > self._clock()))
        )
        with self.engine.connect() as conn:
            row = conn.execute(stmt).first()
        return row.user_id if row is not None else None

    def list_for_user(self, user_id: int) -> list[Session]:
        """Return the user's unexpired sessions, newest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _sessions.select()
                .where((_sessions.c.user_id == user_id) & (_sessions.c.expires_at > self._clock()))
                .order_by(_sessions.c.created_at.desc())
            ).fetchall()
        return [_row_to_session(r) for r in rows]

    def revoke(self, token: str) -> None:
        """Delete one session. Revoking an unknown token is not an error."""
        with self.engine.begin() as conn:
            conn.execute(_sessions.delete().where(_sessions.c.id == token))

    def revoke_all(self, user_id: int, except_token: str | None = None, conn: Connection | None = None) -> int:
        """Delete every session for user_id, optionally sparing except_token.

        Returns the number of sessions removed.
        """
        condition = _sessions.c.user_id == user_id
        if except_token:
            condition = condition & (_sessions.c.id != except_token)
        with transaction(self.engine, conn) as c:
            result = c.execute(_sessions.delete().where(condition))
        return result.rowcount

    def purge_expired(self) -> int:
        """Delete all expired sessions. Returns number of rows removed."""
        with self.engine.begin() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.expires_at <= self._clock()))
        return result.rowcount


# ---------------------------------------------------------------------------
# OTP ledger
# ---------------------------------------------------------------------------


class OTPStore:
    """Repository for one-time codes.

    Per-email state machine:
        NONE -> PENDING -> (CONSUMED | EXPIRED | SUPERSEDED) -> NONE

    Usage:
        otps = OTPStore(engine, digits=6, ttl_seconds=600, cooldown_seconds=60,
                        generation_timeout=30.0)
        record = otps.request_code("a@x.com", OTPOperation.SIGNUP, {"name": "Ada"})
        payload = otps.consume(record.code, "a@x.com", OTPOperation.SIGNUP)
    """

    def __init__(
        self,
        engine: Engine,
        *,
        digits: int,
        ttl_seconds: int,
        cooldown_seconds: int,
        generation_timeout: float,
        clock: Clock = time.time,
        code_generator: Callable[[int], str] = generate_otp_code,
    ) -> None:
        self.engine = engine
        self.digits = digits
        self.ttl_seconds = ttl_seconds
        self.cooldown_seconds = cooldown_seconds
        self.generation_timeout = generation_timeout
        self._clock = clock
        self._generate = code_generator
        _metadata.create_all(self.engine)

    def request_code(self, email: str, operation: OTPOperation, payload: dict | None = None) -> OTPRecord:
        """Issue a fresh code for email, superseding any older one.

        Raises:
            RateLimited: the previous code for this email is younger than the
                cooldown, or a concurrent request for the same email won the
                UNIQUE(email) race.
            GenerationTimeout: no unused code was found before the deadline.
        """
        email = normalize_email(email)
        payload = payload or {}
        now = self._clock()

        with self.engine.begin() as conn:
            existing = conn.execute(_otp_records.select().where(_otp_records.c.email == email)).first()
            if existing is not None:
                elapsed = now - existing.issued_at
                if elapsed < self.cooldown_seconds:
                    raise RateLimited(retry_after=math.ceil(self.cooldown_seconds - elapsed))
            # Supersede the previous code (if any) and sweep stale rows so
            # their codes and emails stop occupying the UNIQUE indexes. The
            # cooldown bound keeps a record inserted by a concurrent request
            # after the check above; that request keeps the email.
            conn.execute(
                _otp_records.delete().where(
                    (_otp_records.c.email == email) & (_otp_records.c.issued_at <= now - self.cooldown_seconds)
                )
            )
            conn.execute(_otp_records.delete().where(_otp_records.c.expires_at < now))

        deadline = time.monotonic() + self.generation_timeout
        attempts = 0
        while True:
            attempts += 1
            record = OTPRecord(
                code=self._generate(self.digits),
                email=email,
                operation=operation,
                payload=payload,
                issued_at=now,
                expires_at=now + self.ttl_seconds,
            )
            try:
                with self.engine.begin() as conn:
                    result = conn.execute(
                        _otp_records.insert().values(
                            code=record.code,
                            email=record.email,
                            operation=record.operation.value,
                            payload=json.dumps(record.payload),
                            issued_at=record.issued_at,
                            expires_at=record.expires_at,
                        )
                    )
                    record_id = result.inserted_primary_key[0]
            except IntegrityError:
                if self.get_by_email(email) is not None:
                    # Another request for this email inserted first.
                    raise RateLimited(retry_after=self.cooldown_seconds) from None
                if time.monotonic() >= deadline:
                    logger.error("OTP generation gave up after %d attempts", attempts)
                    raise GenerationTimeout() from None
                continue
            if attempts > 1:
                logger.info("OTP code collision resolved after %d attempts", attempts)
            return OTPRecord(
                id=record_id,
                code=record.code,
                email=record.email,
                operation=record.operation,
                payload=record.payload,
                issued_at=record.issued_at,
                expires_at=record.expires_at,
            )

    def peek(self, code: str, email: str, expected_operation: OTPOperation) -> OTPRecord:
        """Validate a code without consuming it.

        Raises InvalidOrExpiredOTP when no record has this code, or the record
        belongs to a different email, has expired, or was issued for a
        different operation. All four cases are indistinguishable to callers.
        """
        with self.engine.connect() as conn:
            row = conn.execute(_otp_records.select().where(_otp_records.c.code == code.strip())).fetchone()
        if row is None:
            raise InvalidOrExpiredOTP()
        record = _row_to_otp(row)
        if (
            record.email != normalize_email(email)
            or record.operation != expected_operation
            or record.is_expired(self._clock())
        ):
            raise InvalidOrExpiredOTP()
        return record

    def consume(self, code: str, email: str, expected_operation: OTPOperation) -> dict:
        """Validate and atomically claim a code. Returns its payload.

        The DELETE is conditional on the record id and must remove exactly one
        row; a concurrent consumer that already claimed it leaves rowcount 0
        and this call fails like any other invalid code.
        """
        record = self.peek(code, email, expected_operation)
        with self.engine.begin() as conn:
            result = conn.execute(
                _otp_records.delete().where((_otp_records.c.id == record.id) & (_otp_records.c.code == record.code))
            )
        if result.rowcount != 1:
            raise InvalidOrExpiredOTP()
        return record.payload

    def get_by_email(self, email: str) -> OTPRecord | None:
        with self.engine.connect() as conn:
            row = conn.execute(_otp_records.select().where(_otp_records.c.email == normalize_email(email))).fetchone()
        return _row_to_otp(row) if row is not None else None

    def delete(self, code: str) -> None:
        """Delete a code explicitly. Deleting an unknown code is not an error."""
        with self.engine.begin() as conn:
            conn.execute(_otp_records.delete().where(_otp_records.c.code == code))

    def delete_for_email(self, email: str, conn: Connection | None = None) -> int:
        """Delete the pending code for email, if any. Used on account deletion."""
        with transaction(self.engine, conn) as c:
            result = c.execute(_otp_records.delete().where(_otp_records.c.email == normalize_email(email)))
        return result.rowcount

    def purge_expired(self) -> int:
        """Delete all expired records. Returns number of rows removed.

        peek() already refuses expired records; this only reclaims space and
        frees their codes.
        """
        with self.engine.begin() as conn:
            result = conn.execute(_otp_records.delete().where(_otp_records.c.expires_at < self._clock()))
        return result.rowcount


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        name=row.name or "",
        password_hash=row.password_hash,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_session(row) -> Session:
    return Session(id=row.id, user_id=row.user_id, created_at=row.created_at, expires_at=row.expires_at)


def _row_to_otp(row) -> OTPRecord:
    return OTPRecord(
        id=row.id,
        code=row.code,
        email=row.email,
        operation=OTPOperation(row.operation),
        payload=json.loads(row.payload) if row.payload else {},
        issued_at=row.issued_at,
        expires_at=row.expires_at,
    )
