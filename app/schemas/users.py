"""Request/response schemas for admin user management."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict

from app.schemas.auth import PublicUser


class UserListItem(PublicUser):
    """User entry for admin list (no password)."""

    model_config = ConfigDict(from_attributes=True)

    email_verified: bool
    created_at: datetime | None = None


class UsersListData(BaseModel):
    users: list[UserListItem]
    count: int


class UsersListResponse(BaseModel):
    """Response for GET /users (admin only)."""

    success: bool = True
    data: UsersListData


class AdminUserUpdate(BaseModel):
    username: str | None = None
    email: str | None = None
    role: str | None = None
