"""Pydantic request/response schemas."""

from app.schemas.auth import (
    LoginRequest,
    LoginResponse,
    ProfileResponse,
    PublicUser,
    RegisterRequest,
    RegisterResponse,
    ResetPasswordRequest,
    VerifyEmailRequest,
    VerifyEmailResponse,
)
from app.schemas.common import ErrorResponse, MessageResponse
from app.schemas.health import HealthResponse
from app.schemas.tasks import TaskListResponse, TaskOut, TaskResponse, TaskStatsResponse
from app.schemas.users import UserListItem, UsersListResponse

__all__ = [
    "ErrorResponse",
    "HealthResponse",
    "LoginRequest",
    "LoginResponse",
    "MessageResponse",
    "ProfileResponse",
    "PublicUser",
    "RegisterRequest",
    "RegisterResponse",
    "ResetPasswordRequest",
    "TaskListResponse",
    "TaskOut",
    "TaskResponse",
    "TaskStatsResponse",
    "UserListItem",
    "UsersListResponse",
    "VerifyEmailRequest",
    "VerifyEmailResponse",
]
