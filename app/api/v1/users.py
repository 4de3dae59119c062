"""User management routes (admin only)."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.v1.auth import require_admin
from app.core.database import get_db
from app.core.errors import ConflictError, NotFoundError, ValidationError
from app.models import Task, User
from app.schemas.auth import ProfileResponse, PublicUser, UserData
from app.schemas.common import MessageResponse
from app.schemas.users import AdminUserUpdate, UserListItem, UsersListData, UsersListResponse
from app.services.credentials import ROLES, Identity, is_valid_email

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_user_or_404(db: Session, user_id: int) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise NotFoundError("User not found")
    return user


@router.get("", response_model=UsersListResponse)
def list_users(
    _admin: Annotated[Identity, Depends(require_admin)],
    db: Annotated[Session, Depends(get_db)],
) -> UsersListResponse:
    """List all users, newest first."""
    users = db.query(User).order_by(User.created_at.desc(), User.id.desc()).all()
    return UsersListResponse(
        data=UsersListData(
            users=[UserListItem.model_validate(u) for u in users],
            count=len(users),
        )
    )


@router.get("/{user_id}", response_model=ProfileResponse)
def get_user(
    user_id: int,
    _admin: Annotated[Identity, Depends(require_admin)],
    db: Annotated[Session, Depends(get_db)],
) -> ProfileResponse:
    user = _get_user_or_404(db, user_id)
    return ProfileResponse(data=UserData(user=PublicUser.model_validate(user)))


@router.put("/{user_id}", response_model=ProfileResponse)
def update_user(
    user_id: int,
    body: AdminUserUpdate,
    admin: Annotated[Identity, Depends(require_admin)],
    db: Annotated[Session, Depends(get_db)],
) -> ProfileResponse:
    """Change username, email and role of any account. This is the only way to change a role."""
    if not (body.username and body.username.strip() and body.email and body.role):
        raise ValidationError("Username, email, and role are required")
    if body.role not in ROLES:
        raise ValidationError('Role must be either "admin" or "user"')
    if not is_valid_email(body.email):
        raise ValidationError("Please provide a valid email address")

    user = _get_user_or_404(db, user_id)
    taken = db.query(User.id).filter(User.email == body.email, User.id != user_id).first()
    if taken is not None:
        raise ConflictError("Email already taken by another user")
    taken = db.query(User.id).filter(User.username == body.username, User.id != user_id).first()
    if taken is not None:
        raise ConflictError("Username already taken")

    previous_role = user.role
    user.username = body.username
    user.email = body.email
    user.role = body.role
    db.commit()
    db.refresh(user)
    logger.info(
        "User updated by admin",
        extra={
            "account_id": user.id,
            "admin_id": admin.id,
            "role_from": previous_role,
            "role_to": user.role,
        },
    )
    return ProfileResponse(
        message="User updated successfully",
        data=UserData(user=PublicUser.model_validate(user)),
    )


@router.delete("/{user_id}", response_model=MessageResponse)
def delete_user(
    user_id: int,
    admin: Annotated[Identity, Depends(require_admin)],
    db: Annotated[Session, Depends(get_db)],
) -> MessageResponse:
    """Delete an account and its tasks. Admins cannot delete themselves."""
    if user_id == admin.id:
        raise ValidationError("You cannot delete your own account")
    user = _get_user_or_404(db, user_id)
    db.query(Task).filter(Task.user_id == user.id).delete(synchronize_session=False)
    db.delete(user)
    db.commit()
    logger.info("User deleted by admin", extra={"account_id": user_id, "admin_id": admin.id})
    return MessageResponse(message="User deleted successfully")
