"""
todo/models.py -- Domain dataclasses for the Priorly to-do list.

These are pure data containers with zero logic. Stamping of completed_at /
deleted_at and the toggle rules live in todo/store.py.

Separation of concerns: these dataclasses are the to-do list's domain truth,
just as auth/models.py is the account domain's truth. Neither layer imports
the other; todo/ only ever sees a user_id.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class Todo:
    """A single to-do item owned by one user.

    Deleting from the UI is a soft delete (is_deleted + deleted_at) so items
    can be restored. Hard deletion happens through TodoStore.delete_todo and
    when the owning account is removed.

    id is None before the record is written to the database.
    """

    user_id: int
    title: str
    description: str = ""
    priority: int = 0  # 0 = none, 1 = low, 2 = medium, 3 = high
    is_important: bool = False
    is_urgent: bool = False
    is_done: bool = False
    completed_at: Optional[float] = None  # epoch seconds
    is_deleted: bool = False
    deleted_at: Optional[float] = None
    created_at: float = 0.0  # set by store on insert
    updated_at: float = 0.0
    id: Optional[int] = None


@dataclass
class TodoFilters:
    """Optional filters for list/count queries. None means "don't filter".

    is_deleted defaults to False so the trash is hidden unless asked for.
    """

    is_important: Optional[bool] = None
    is_urgent: Optional[bool] = None
    is_done: Optional[bool] = None
    is_deleted: Optional[bool] = False
