"""
API request and response models for the Priorly REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
todo/models.py, which own the internal domain representation. Route handlers
map between the two.

Auth request bodies are not defined here: the routes use the request structs
from auth/schemas.py directly, since AuthService consumes the same types.

Separation of concerns: domain dataclasses = domain truth; api/ models = API contract.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import Session, User
from todo.models import Todo

# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload.

    fields is set only for validation errors and maps each offending field
    to a message the client can show next to it.
    """

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None
    fields: Optional[dict[str, str]] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health.

    status is "healthy" when every component reports "ok", "degraded" otherwise.
    """

    model_config = ConfigDict(frozen=True)

    status: str
    version: str
    components: dict[str, str]


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


# ---------------------------------------------------------------------------
# Auth / user
# ---------------------------------------------------------------------------


class CodeSentResponse(BaseModel):
    """Returned by every endpoint that mails a one-time code.

    expires_in and resend_after are seconds, so clients can show a countdown
    without knowing the server's settings.
    """

    model_config = ConfigDict(frozen=True)

    message: str
    expires_in: int
    resend_after: int


class UserResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    name: str
    has_password: bool
    created_at: Optional[float]

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            has_password=user.password_hash is not None,
            created_at=user.created_at,
        )


class AuthResponse(BaseModel):
    """Response for the endpoints that open a session.

    The token is also set as the httpOnly session cookie. Browser clients
    should ignore it here; API clients send it back as a Bearer token.
    """

    model_config = ConfigDict(frozen=True)

    user: UserResponse
    session_token: str
    expires_at: float

    @classmethod
    def build(cls, user: User, session: Session) -> "AuthResponse":
        return cls(user=UserResponse.from_user(user), session_token=session.id, expires_at=session.expires_at)


class SessionInfo(BaseModel):
    """One active session. The full token is never listed, only a prefix."""

    model_config = ConfigDict(frozen=True)

    token_prefix: str
    created_at: float
    expires_at: float
    current: bool


class LogoutAllResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    revoked: int


class OAuthProviderInfo(BaseModel):
    """Metadata for one enabled OAuth provider."""

    model_config = ConfigDict(frozen=True)

    name: str
    label: str


# ---------------------------------------------------------------------------
# To-do items
# ---------------------------------------------------------------------------


class TodoCreate(BaseModel):
    """Request body for POST /api/v1/todos."""

    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(min_length=1, max_length=60)
    description: str = Field(default="", max_length=300)
    priority: int = Field(default=0, ge=0, le=3)
    is_important: bool = False
    is_urgent: bool = False


class TodoPatch(BaseModel):
    """Request body for PATCH /api/v1/todos/{id}. Omitted fields are unchanged.

    is_done and is_deleted are toggles and must be sent on their own.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    title: Optional[str] = Field(default=None, min_length=1, max_length=60)
    description: Optional[str] = Field(default=None, max_length=300)
    priority: Optional[int] = Field(default=None, ge=0, le=3)
    is_important: Optional[bool] = None
    is_urgent: Optional[bool] = None
    is_done: Optional[bool] = None
    is_deleted: Optional[bool] = None


class TodoResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    title: str
    description: str
    priority: int
    is_important: bool
    is_urgent: bool
    is_done: bool
    completed_at: Optional[float]
    is_deleted: bool
    deleted_at: Optional[float]
    created_at: float
    updated_at: float

    @classmethod
    def from_todo(cls, todo: Todo) -> "TodoResponse":
        return cls(
            id=todo.id,
            title=todo.title,
            description=todo.description,
            priority=todo.priority,
            is_important=todo.is_important,
            is_urgent=todo.is_urgent,
            is_done=todo.is_done,
            completed_at=todo.completed_at,
            is_deleted=todo.is_deleted,
            deleted_at=todo.deleted_at,
            created_at=todo.created_at,
            updated_at=todo.updated_at,
        )


class TodoListResponse(BaseModel):
    """One page of items. next_cursor is -1 once the list is exhausted."""

    model_config = ConfigDict(frozen=True)

    items: list[TodoResponse]
    next_cursor: int


class TodoCountResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    count: int
