"""Account lifecycle routes and auth dependencies (get_current_user, require_admin)."""

from functools import lru_cache
from typing import Annotated

from fastapi import APIRouter, Depends, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.database import get_db
from app.core.errors import AuthenticationError, ForbiddenError
from app.schemas.auth import (
    ForgotPasswordRequest,
    LoginData,
    LoginRequest,
    LoginResponse,
    ProfileResponse,
    ProfileUpdateRequest,
    PublicUser,
    RegisteredAccount,
    RegisterRequest,
    RegisterResponse,
    ResetPasswordRequest,
    UserData,
    VerifiedEmail,
    VerifyEmailRequest,
    VerifyEmailResponse,
)
from app.schemas.common import MessageResponse
from app.services.credentials import CredentialLifecycle, Identity, build_lifecycle
from app.services.notifications import EmailNotifier, Notifier

router = APIRouter()
security = HTTPBearer(auto_error=False)


@lru_cache
def get_notifier() -> Notifier:
    """Process-wide notifier built from settings; override in tests."""
    return EmailNotifier.from_settings(get_settings())


def get_lifecycle(
    db: Annotated[Session, Depends(get_db)],
    notifier: Annotated[Notifier, Depends(get_notifier)],
) -> CredentialLifecycle:
    """Dependency: credential lifecycle bound to this request's DB session."""
    return build_lifecycle(db, get_settings(), notifier)


def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    lifecycle: Annotated[CredentialLifecycle, Depends(get_lifecycle)],
) -> Identity:
    """Dependency: require valid Bearer JWT and return the current user. Raises 401 if missing or invalid."""
    token = credentials.credentials if credentials is not None else None
    return lifecycle.authorize(token)


def get_optional_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    lifecycle: Annotated[CredentialLifecycle, Depends(get_lifecycle)],
) -> Identity | None:
    """Dependency: the caller's identity if a valid token was sent, otherwise None."""
    if credentials is None:
        return None
    try:
        return lifecycle.authorize(credentials.credentials)
    except AuthenticationError:
        return None


def require_role(*roles: str):
    """Build a dependency that admits only the given roles (403 otherwise)."""

    def dependency(
        current_user: Annotated[Identity, Depends(get_current_user)],
    ) -> Identity:
        if current_user.role not in roles:
            raise ForbiddenError(f"Access denied. Required role(s): {', '.join(roles)}")
        return current_user

    return dependency


require_admin = require_role("admin")
require_user = require_role("user", "admin")


@router.post("/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
def register(
    body: RegisterRequest,
    lifecycle: Annotated[CredentialLifecycle, Depends(get_lifecycle)],
    actor: Annotated[Identity | None, Depends(get_optional_user)],
) -> RegisterResponse:
    """
    Create an account. The account must verify its email before it can log in;
    the verification token is sent by email, never returned here.
    Requesting role=admin requires an admin Bearer token.
    """
    result = lifecycle.register(body.username, body.email, body.password, body.role, actor=actor)
    return RegisterResponse(
        message="Registration successful. Please check your email to verify your account.",
        data=RegisteredAccount(id=result.account_id, email=result.email),
    )


@router.post(
    "/register/admin",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
)
def register_by_admin(
    body: RegisterRequest,
    lifecycle: Annotated[CredentialLifecycle, Depends(get_lifecycle)],
    admin: Annotated[Identity, Depends(require_admin)],
) -> RegisterResponse:
    """Admin-only registration; may create admin accounts."""
    result = lifecycle.register(body.username, body.email, body.password, body.role, actor=admin)
    return RegisterResponse(
        message="Registration successful. Please check your email to verify your account.",
        data=RegisteredAccount(id=result.account_id, email=result.email),
    )


@router.post("/verify-email", response_model=VerifyEmailResponse)
def verify_email(
    body: VerifyEmailRequest,
    lifecycle: Annotated[CredentialLifecycle, Depends(get_lifecycle)],
) -> VerifyEmailResponse:
    account = lifecycle.verify_email(body.token)
    return VerifyEmailResponse(
        message="Email verified successfully. You can now log in.",
        data=VerifiedEmail(email=account.email),
    )


@router.post("/login", response_model=LoginResponse)
def login(
    body: LoginRequest,
    lifecycle: Annotated[CredentialLifecycle, Depends(get_lifecycle)],
) -> LoginResponse:
    """
    Authenticate with email and password; returns a JWT access token.
    Include the token in the Authorization header as: Bearer <token>
    """
    result = lifecycle.login(body.email, body.password)
    return LoginResponse(
        message="Login successful",
        data=LoginData(token=result.token, user=PublicUser(**result.account.public())),
    )


@router.post("/forgot-password", response_model=MessageResponse)
def forgot_password(
    body: ForgotPasswordRequest,
    lifecycle: Annotated[CredentialLifecycle, Depends(get_lifecycle)],
) -> MessageResponse:
    """Always answers with the same message, whether or not the email is registered."""
    return MessageResponse(message=lifecycle.request_password_reset(body.email))


@router.post("/reset-password", response_model=MessageResponse)
def reset_password(
    body: ResetPasswordRequest,
    lifecycle: Annotated[CredentialLifecycle, Depends(get_lifecycle)],
) -> MessageResponse:
    lifecycle.reset_password(body.reset_token, body.new_password)
    return MessageResponse(
        message="Password has been reset successfully. You can now log in with your new password."
    )


@router.get("/profile", response_model=ProfileResponse)
def get_profile(
    current_user: Annotated[Identity, Depends(get_current_user)],
    lifecycle: Annotated[CredentialLifecycle, Depends(get_lifecycle)],
) -> ProfileResponse:
    account = lifecycle.get_profile(current_user)
    return ProfileResponse(data=UserData(user=PublicUser(**account.public())))


@router.put("/profile", response_model=ProfileResponse)
def update_profile(
    body: ProfileUpdateRequest,
    current_user: Annotated[Identity, Depends(get_current_user)],
    lifecycle: Annotated[CredentialLifecycle, Depends(get_lifecycle)],
) -> ProfileResponse:
    account = lifecycle.update_profile(current_user, body.username, body.email)
    return ProfileResponse(
        message="Profile updated successfully",
        data=UserData(user=PublicUser(**account.public())),
    )


@router.post("/logout", response_model=MessageResponse)
def logout(
    _user: Annotated[Identity, Depends(get_current_user)],
) -> MessageResponse:
    """Tokens are stateless; the client discards its copy. The token stays valid until it expires."""
    return MessageResponse(message="Logout successful.")
