"""Request/response schemas for auth endpoints.

Request fields are optional so that missing values reach the credential
lifecycle, which reports them with its own 400 messages.
"""

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.common import MessageResponse


class RegisterRequest(BaseModel):
    """New account; role defaults to user, admin requires an admin token."""

    username: str | None = Field(default=None, description="Unique username")
    email: str | None = Field(default=None, description="Unique email address")
    password: str | None = Field(default=None, description="At least 6 characters")
    role: str | None = Field(default="user", description="'user' or 'admin'")


class VerifyEmailRequest(BaseModel):
    token: str | None = Field(default=None, description="Verification token from the email")


class LoginRequest(BaseModel):
    """Credentials for login."""

    email: str | None = None
    password: str | None = None


class ForgotPasswordRequest(BaseModel):
    email: str | None = None


class ResetPasswordRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    reset_token: str | None = Field(default=None, alias="resetToken")
    new_password: str | None = Field(default=None, alias="newPassword")


class ProfileUpdateRequest(BaseModel):
    username: str | None = None
    email: str | None = None


class PublicUser(BaseModel):
    """Account as shown to clients (no password hash, no tokens)."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    email: str
    role: str


class RegisteredAccount(BaseModel):
    id: int
    email: str
    email_verified: bool = False


class RegisterResponse(MessageResponse):
    data: RegisteredAccount


class VerifiedEmail(BaseModel):
    email: str
    verified: bool = True


class VerifyEmailResponse(MessageResponse):
    data: VerifiedEmail


class LoginData(BaseModel):
    token: str = Field(..., description="JWT bearer token")
    token_type: str = Field(default="bearer", description="Token type")
    user: PublicUser


class LoginResponse(MessageResponse):
    data: LoginData


class UserData(BaseModel):
    user: PublicUser


class ProfileResponse(BaseModel):
    success: bool = True
    message: str | None = None
    data: UserData
