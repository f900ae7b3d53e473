"""
api/routes/v1/todos.py -- Per-user to-do list CRUD.

Routes (in registration order to avoid FastAPI path capture conflicts):
  POST   /todos          -- create item
  GET    /todos          -- list one page (filters + cursor)
  GET    /todos/count    -- count items matching the filters (before /todos/{id})
  GET    /todos/{id}     -- item detail
  PATCH  /todos/{id}     -- edit fields, or toggle is_done / is_deleted
  DELETE /todos/{id}     -- permanent delete

Ownership: every store call passes current_user.id; TodoStore filters on it
in the WHERE clause, so another user's item is indistinguishable from a
missing one (404).

Pagination: cursor is an offset. next_cursor = cursor + len(items), or -1
once a page comes back empty.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response

from api.models import TodoCountResponse, TodoCreate, TodoListResponse, TodoPatch, TodoResponse
from auth.dependencies import get_current_user
from auth.models import User
from todo.models import Todo, TodoFilters
from todo.store import TodoChangeError, TodoStore, build_updates

router = APIRouter()


def _store(request: Request) -> TodoStore:
    return request.app.state.todo_store


def _filters(
    is_important: Optional[bool] = Query(default=None),
    is_urgent: Optional[bool] = Query(default=None),
    is_done: Optional[bool] = Query(default=None),
    is_deleted: bool = Query(default=False),
) -> TodoFilters:
    return TodoFilters(is_important=is_important, is_urgent=is_urgent, is_done=is_done, is_deleted=is_deleted)


def _not_found() -> HTTPException:
    return HTTPException(status_code=404, detail={"code": "not_found", "message": "To-do item not found."})


@router.post("/todos", response_model=TodoResponse, status_code=201)
def create_todo(
    request: Request,
    body: TodoCreate,
    current_user: User = Depends(get_current_user),
) -> TodoResponse:
    todo = _store(request).create_todo(
        Todo(
            user_id=current_user.id,
            title=body.title,
            description=body.description,
            priority=body.priority,
            is_important=body.is_important,
            is_urgent=body.is_urgent,
        )
    )
    return TodoResponse.from_todo(todo)


@router.get("/todos", response_model=TodoListResponse)
def list_todos(
    request: Request,
    filters: TodoFilters = Depends(_filters),
    cursor: int = Query(default=0, ge=0),
    limit: int = Query(default=10, ge=1, le=50),
    current_user: User = Depends(get_current_user),
) -> TodoListResponse:
    """Return one page of the user's items. Soft-deleted items need is_deleted=true."""
    items = _store(request).list_todos(current_user.id, filters, cursor=cursor, limit=limit)
    next_cursor = cursor + len(items) if items else -1
    return TodoListResponse(items=[TodoResponse.from_todo(t) for t in items], next_cursor=next_cursor)


@router.get("/todos/count", response_model=TodoCountResponse)
def count_todos(
    request: Request,
    filters: TodoFilters = Depends(_filters),
    current_user: User = Depends(get_current_user),
) -> TodoCountResponse:
    return TodoCountResponse(count=_store(request).count_todos(current_user.id, filters))


@router.get("/todos/{todo_id}", response_model=TodoResponse)
def get_todo(
    request: Request,
    todo_id: int,
    current_user: User = Depends(get_current_user),
) -> TodoResponse:
    todo = _store(request).get_todo(todo_id, current_user.id)
    if todo is None:
        raise _not_found()
    return TodoResponse.from_todo(todo)


@router.patch("/todos/{todo_id}", response_model=TodoResponse)
def update_todo(
    request: Request,
    todo_id: int,
    body: TodoPatch,
    current_user: User = Depends(get_current_user),
) -> TodoResponse:
    """Apply a partial update. Toggles (is_done, is_deleted) must be sent alone."""
    store = _store(request)
    todo = store.get_todo(todo_id, current_user.id)
    if todo is None:
        raise _not_found()

    changes = {k: v for k, v in body.model_dump(exclude_unset=True).items() if v is not None}
    try:
        updates = build_updates(todo, changes)
    except TodoChangeError as exc:
        raise HTTPException(status_code=400, detail={"code": "invalid_change", "message": str(exc)}) from exc

    updated = store.update_todo(todo_id, current_user.id, updates)
    if updated is None:
        raise _not_found()
    return TodoResponse.from_todo(updated)


@router.delete("/todos/{todo_id}", status_code=204)
def delete_todo(
    request: Request,
    todo_id: int,
    current_user: User = Depends(get_current_user),
) -> Response:
    """Permanently delete an item. Use PATCH is_deleted=true for the trash."""
    if not _store(request).delete_todo(todo_id, current_user.id):
        raise _not_found()
    return Response(status_code=204)
