"""Unit tests for todo/store.py -- TodoStore and the build_updates() rules.

Covers:
- create/get round trip with defaults
- ownership: another user's id behaves like a missing item
- list_todos filters, oldest-first order, and cursor paging
- count_todos matches the filters
- build_updates: toggles alone, deleted items only restorable, timestamps stamped
- delete_todo and delete_all_for_user
"""

from __future__ import annotations

import pytest

from todo.models import Todo, TodoFilters
from todo.store import TodoChangeError, TodoStore, build_updates


@pytest.fixture
def seeded(todos: TodoStore) -> TodoStore:
    """User 1 owns five items; user 2 owns one.

    Items for user 1:
      0 "Write report"   important + urgent
      1 "Call plumber"   urgent
      2 "Read book"      important
      3 "Water plants"   (plain)
      4 "Old task"       done
    """
    todos.create_todo(Todo(user_id=1, title="Write report", is_important=True, is_urgent=True, priority=3))
    todos.create_todo(Todo(user_id=1, title="Call plumber", is_urgent=True))
    todos.create_todo(Todo(user_id=1, title="Read book", is_important=True))
    todos.create_todo(Todo(user_id=1, title="Water plants"))
    done = todos.create_todo(Todo(user_id=1, title="Old task"))
    todos.update_todo(done.id, 1, build_updates(done, {"is_done": True}))
    todos.create_todo(Todo(user_id=2, title="Not yours"))
    return todos


class TestCrud:
    def test_create_sets_defaults(self, todos: TodoStore) -> None:
        todo = todos.create_todo(Todo(user_id=1, title="Buy milk"))
        assert todo.id is not None
        assert todo.description == ""
        assert todo.priority == 0
        assert not todo.is_done and not todo.is_deleted
        assert todo.created_at > 0 and todo.updated_at == todo.created_at

    def test_other_users_item_is_invisible(self, seeded: TodoStore) -> None:
        theirs = seeded.list_todos(2, TodoFilters())[0]
        assert seeded.get_todo(theirs.id, 1) is None
        assert seeded.update_todo(theirs.id, 1, {"title": "Hijacked"}) is None
        assert seeded.delete_todo(theirs.id, 1) is False
        assert seeded.get_todo(theirs.id, 2).title == "Not yours"

    def test_delete_all_for_user(self, seeded: TodoStore) -> None:
        assert seeded.delete_all_for_user(1) == 5
        assert seeded.count_todos(1, TodoFilters(is_deleted=None)) == 0
        assert seeded.count_todos(2, TodoFilters()) == 1


class TestListing:
    def test_filters(self, seeded: TodoStore) -> None:
        titles = lambda f: [t.title for t in seeded.list_todos(1, f, limit=50)]  # noqa: E731
        assert titles(TodoFilters(is_important=True)) == ["Write report", "Read book"]
        assert titles(TodoFilters(is_urgent=True, is_important=False)) == ["Call plumber"]
        assert titles(TodoFilters(is_done=True)) == ["Old task"]
        assert seeded.count_todos(1, TodoFilters(is_done=False)) == 4

    def test_cursor_paging(self, seeded: TodoStore) -> None:
        first = seeded.list_todos(1, TodoFilters(), cursor=0, limit=2)
        second = seeded.list_todos(1, TodoFilters(), cursor=2, limit=2)
        third = seeded.list_todos(1, TodoFilters(), cursor=4, limit=2)
        assert [t.title for t in first] == ["Write report", "Call plumber"]
        assert [t.title for t in second] == ["Read book", "Water plants"]
        assert [t.title for t in third] == ["Old task"]
        assert seeded.list_todos(1, TodoFilters(), cursor=5, limit=2) == []

    def test_trash_hidden_by_default(self, seeded: TodoStore) -> None:
        item = seeded.list_todos(1, TodoFilters())[0]
        seeded.update_todo(item.id, 1, build_updates(item, {"is_deleted": True}))
        assert seeded.count_todos(1, TodoFilters()) == 4
        assert [t.id for t in seeded.list_todos(1, TodoFilters(is_deleted=True))] == [item.id]


class TestBuildUpdates:
    def test_done_stamps_and_clears_completed_at(self) -> None:
        todo = Todo(user_id=1, title="x", id=1)
        assert build_updates(todo, {"is_done": True}, now=100.0) == {"is_done": True, "completed_at": 100.0}
        assert build_updates(todo, {"is_done": False}, now=100.0) == {"is_done": False, "completed_at": None}

    def test_toggles_must_be_sent_alone(self) -> None:
        todo = Todo(user_id=1, title="x", id=1)
        with pytest.raises(TodoChangeError):
            build_updates(todo, {"is_done": True, "title": "y"})
        with pytest.raises(TodoChangeError):
            build_updates(todo, {"is_done": True, "is_deleted": True})

    def test_deleted_item_only_restorable(self) -> None:
        todo = Todo(user_id=1, title="x", id=1, is_deleted=True, deleted_at=50.0)
        with pytest.raises(TodoChangeError):
            build_updates(todo, {"title": "y"})
        assert build_updates(todo, {"is_deleted": False}, now=100.0) == {"is_deleted": False, "deleted_at": None}

    def test_empty_changes_rejected(self) -> None:
        with pytest.raises(TodoChangeError):
            build_updates(Todo(user_id=1, title="x", id=1), {})

    def test_update_persists_and_bumps_updated_at(self, todos: TodoStore) -> None:
        todo = todos.create_todo(Todo(user_id=1, title="Draft"))
        updated = todos.update_todo(todo.id, 1, build_updates(todo, {"title": "Final", "priority": 2}))
        assert updated.title == "Final"
        assert updated.priority == 2
        assert updated.updated_at >= todo.updated_at
