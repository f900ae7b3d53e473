"""
core/database.py -- SQLAlchemy engine construction shared by every store.

All stores (auth/store.py, todo/store.py) run against one Engine so that the
users, sessions, otp_records, and todos tables live in the same database and
the session registry can join against users when resolving a token.

SQLite specifics:
  check_same_thread=False -- FastAPI runs sync endpoints in a threadpool, so a
      pooled connection may be used from a different thread than the one that
      opened it.
  WAL journal mode       -- readers do not block on writers.
  busy timeout           -- concurrent writers wait for the lock instead of
      failing immediately with "database is locked". The OTP ledger relies on
      the second writer reaching the UNIQUE constraint, not on a lock error.

Usage:
    engine = create_db_engine("sqlite:///priorly.db")
    engine = create_db_engine("postgresql://user:pw@host/db")

Layer rule: core/ is the kernel. No imports from api/, auth/, or todo/.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Connection, Engine

_SQLITE_BUSY_TIMEOUT_SECONDS = 15


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def create_db_engine(db_url: str) -> Engine:
    """Return an Engine for db_url with the SQLite pragmas applied where relevant."""
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        connect_args["timeout"] = _SQLITE_BUSY_TIMEOUT_SECONDS
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    return engine


@contextmanager
def transaction(engine: Engine, conn: Optional[Connection] = None) -> Iterator[Connection]:
    """Yield conn if the caller already holds a transaction, else begin one on engine.

    Store methods that take an optional conn use this so several of them can
    commit or roll back together:

        with transaction(engine) as conn:
            sessions.revoke_all(user_id, conn=conn)
            users.delete_user(user_id, conn=conn)
    """
    if conn is not None:
        yield conn
        return
    with engine.begin() as new_conn:
        yield new_conn
