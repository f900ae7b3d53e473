"""
todo/store.py -- SQLAlchemy-backed persistence layer for Priorly to-do items.

Uses SQLAlchemy Core (not ORM) so the domain dataclasses in todo/models.py
remain the authoritative domain representation.

Pattern: Repository + Data Mapper. TodoStore is the repository; _row_to_todo
is the mapper. Route handlers never touch SQL directly.

Ownership: every query that reads or writes a single item by id also filters
on user_id, so one user can never touch another user's item even with a
guessed id (IDOR guard lives in the WHERE clause, not in the caller).

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = TodoStore(engine)
    todo = store.create_todo(Todo(user_id=1, title="Buy milk"))
    store.update_todo(todo.id, 1, build_updates(todo, {"is_done": True}))
    store.delete_all_for_user(1)
"""

import time
from typing import Optional

from sqlalchemy import Boolean, Column, Float, Integer, MetaData, String, Table, func, select
from sqlalchemy.engine import Connection, Engine

from core.database import transaction
from todo.models import Todo, TodoFilters

metadata = MetaData()

_todos = Table(
    "todos",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, nullable=False, index=True),
    Column("title", String(60), nullable=False),
    Column("description", String(300), nullable=False, server_default=""),
    Column("priority", Integer, nullable=False, server_default="0"),
    Column("is_important", Boolean, nullable=False, server_default="0"),
    Column("is_urgent", Boolean, nullable=False, server_default="0"),
    Column("is_done", Boolean, nullable=False, server_default="0"),
    Column("completed_at", Float),
    Column("is_deleted", Boolean, nullable=False, server_default="0"),
    Column("deleted_at", Float),
    Column("created_at", Float, nullable=False),
    Column("updated_at", Float, nullable=False),
)

_TOGGLE_FIELDS = ("is_done", "is_deleted")


class TodoChangeError(ValueError):
    """An update that breaks the toggle rules in build_updates()."""


def build_updates(todo: Todo, changes: dict, now: Optional[float] = None) -> dict:
    """Turn requested changes into the column values to write.

    Rules:
      - is_done / is_deleted toggles must be sent alone.
      - A deleted item only accepts being restored (is_deleted=False).
      - Marking done stamps completed_at; un-marking clears it. Same for
        is_deleted / deleted_at.

    Raises TodoChangeError when a rule is broken or changes is empty.
    """
    if not changes:
        raise TodoChangeError("No changes to apply.")
    toggles = [f for f in _TOGGLE_FIELDS if f in changes]
    if toggles and len(changes) > 1:
        raise TodoChangeError("Cannot apply other changes while toggling done or deleted.")
    if todo.is_deleted and changes != {"is_deleted": False}:
        raise TodoChangeError("Cannot apply any changes to a deleted item.")

    now = now if now is not None else time.time()
    updates = dict(changes)
    if "is_done" in changes:
        updates["completed_at"] = now if changes["is_done"] else None
    if "is_deleted" in changes:
        updates["deleted_at"] = now if changes["is_deleted"] else None
    return updates


def _filter_clause(user_id: int, filters: TodoFilters):
    clause = _todos.c.user_id == user_id
    for name in ("is_important", "is_urgent", "is_done", "is_deleted"):
        value = getattr(filters, name)
        if value is not None:
            clause = clause & (_todos.c[name] == value)
    return clause


class TodoStore:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        metadata.create_all(self.engine)

    def create_todo(self, todo: Todo) -> Todo:
        """Insert a new item and return it with id and timestamps filled in."""
        now = time.time()
        with self.engine.begin() as conn:
            result = conn.execute(
                _todos.insert().values(
                    user_id=todo.user_id,
                    title=todo.title,
                    description=todo.description,
                    priority=todo.priority,
                    is_important=todo.is_important,
                    is_urgent=todo.is_urgent,
                    created_at=now,
                    updated_at=now,
                )
            )
            todo_id = result.inserted_primary_key[0]
        return self.get_todo(todo_id, todo.user_id)

    def get_todo(self, todo_id: int, user_id: int) -> Optional[Todo]:
        """Fetch one item owned by user_id. Returns None if missing or not theirs."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _todos.select().where((_todos.c.id == todo_id) & (_todos.c.user_id == user_id))
            ).fetchone()
        return _row_to_todo(row) if row is not None else None

    def list_todos(self, user_id: int, filters: TodoFilters, cursor: int = 0, limit: int = 10) -> list[Todo]:
        """Return one page of the user's items, oldest first.

        cursor is an offset into the filtered result set.
        """
        with self.engine.connect() as conn:
            rows = conn.execute(
                _todos.select()
                .where(_filter_clause(user_id, filters))
                .order_by(_todos.c.id)
                .offset(cursor)
                .limit(limit)
            ).fetchall()
        return [_row_to_todo(r) for r in rows]

    def count_todos(self, user_id: int, filters: TodoFilters) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_todos).where(_filter_clause(user_id, filters)))
            return result.scalar() or 0

    def update_todo(self, todo_id: int, user_id: int, updates: dict) -> Optional[Todo]:
        """Write pre-built updates (see build_updates). Returns the fresh item."""
        updates = dict(updates, updated_at=time.time())
        with self.engine.begin() as conn:
            result = conn.execute(
                _todos.update().where((_todos.c.id == todo_id) & (_todos.c.user_id == user_id)).values(**updates)
            )
        if result.rowcount == 0:
            return None
        return self.get_todo(todo_id, user_id)

    def delete_todo(self, todo_id: int, user_id: int) -> bool:
        """Permanently delete one item. Returns False if missing or not owned."""
        with self.engine.begin() as conn:
            result = conn.execute(_todos.delete().where((_todos.c.id == todo_id) & (_todos.c.user_id == user_id)))
        return result.rowcount > 0

    def delete_all_for_user(self, user_id: int, conn: Optional[Connection] = None) -> int:
        """Delete every item owned by user_id. Called on account deletion.

        Pass conn to join the caller's transaction.
        """
        with transaction(self.engine, conn) as c:
            result = c.execute(_todos.delete().where(_todos.c.user_id == user_id))
        return result.rowcount


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern -- DB row -> domain dataclass)
# ---------------------------------------------------------------------------


def _row_to_todo(row) -> Todo:
    return Todo(
        id=row.id,
        user_id=row.user_id,
        title=row.title,
        description=row.description or "",
        priority=row.priority,
        is_important=bool(row.is_important),
        is_urgent=bool(row.is_urgent),
        is_done=bool(row.is_done),
        completed_at=row.completed_at,
        is_deleted=bool(row.is_deleted),
        deleted_at=row.deleted_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
