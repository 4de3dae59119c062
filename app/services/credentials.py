"""Account credential lifecycle: register, verify email, login, password reset.

Activation state per account:

    Unverified --verify_email(valid token)--> Verified   (terminal)

Password reset is an independent, repeatable cycle available in either state:

    NoResetPending --request_password_reset--> ResetPending
    ResetPending --reset_password(valid token)--> NoResetPending

ResetPending also falls back to NoResetPending once its token expires; expiry
is checked by the store at lookup time.

The engine owns no state of its own. It is built per request around an
AccountStore, a TokenCodec and a Notifier, and converts every domain
condition into an app.core.errors.ServiceError at the point of detection.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

from app.core.errors import (
    AuthenticationError,
    ConflictError,
    DuplicateAccountError,
    ForbiddenError,
    InternalError,
    InvalidTokenError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from app.core.logging import redact_email
from app.core.security import (
    BCRYPT_ROUNDS,
    EMAIL_MAX_LEN,
    LIFECYCLE_TOKEN_MIN_LEN,
    PASSWORD_MIN_LEN,
    USERNAME_MAX_LEN,
    SessionTokenError,
    TokenCodec,
    generate_lifecycle_token,
    hash_password,
    verify_password,
)
from app.services.account_store import Account, AccountStore, NewAccount, SqlAccountStore
from app.services.notifications import NotificationKind, Notifier

if TYPE_CHECKING:
    from app.core.config import Settings

logger = logging.getLogger(__name__)

ROLES = ("user", "admin")

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

FIELDS_REQUIRED = "Username, email, and password are required"
INVALID_EMAIL = "Please provide a valid email address"
PASSWORD_TOO_SHORT = f"Password must be at least {PASSWORD_MIN_LEN} characters long"
EMAIL_TAKEN = "User with this email already exists"
USERNAME_TAKEN = "Username already taken"
ADMIN_ONLY = "Only administrators can create admin accounts"
INVALID_CREDENTIALS = "Invalid email or password"
VERIFY_FIRST = "Please verify your email address before logging in"
INVALID_VERIFICATION_TOKEN = "Invalid or expired verification token"
INVALID_RESET_TOKEN = "Invalid or expired reset token"
RESET_REQUESTED = "If an account with that email exists, a password reset link has been sent."


def is_valid_email(email: str) -> bool:
    return len(email) <= EMAIL_MAX_LEN and EMAIL_PATTERN.match(email) is not None


def _present(value: object) -> bool:
    return isinstance(value, str) and value.strip() != ""


@dataclass(frozen=True)
class Identity:
    """Who a valid bearer token belongs to, with the account's current role."""

    id: int
    username: str
    email: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


@dataclass(frozen=True)
class RegistrationResult:
    account_id: int
    email: str


@dataclass(frozen=True)
class LoginResult:
    token: str
    account: Account


class CredentialLifecycle:
    """State machine for account activation, sessions and password reset."""

    def __init__(
        self,
        store: AccountStore,
        codec: TokenCodec,
        notifier: Notifier,
        *,
        bcrypt_rounds: int = BCRYPT_ROUNDS,
        verification_ttl: timedelta = timedelta(hours=24),
        reset_ttl: timedelta = timedelta(hours=1),
        clock: Callable[[], datetime] | None = None,
        expose_errors: bool = False,
    ) -> None:
        self.store = store
        self.codec = codec
        self.notifier = notifier
        self.bcrypt_rounds = bcrypt_rounds
        self.verification_ttl = verification_ttl
        self.reset_ttl = reset_ttl
        self._clock = clock or (lambda: datetime.now(UTC))
        self.expose_errors = expose_errors

    def _now(self) -> datetime:
        return self._clock()

    @contextmanager
    def _storage(self, operation: str, failure_message: str) -> Iterator[None]:
        """Turn StorageError raised inside the block into a logged InternalError."""
        try:
            yield
        except StorageError as e:
            logger.exception(
                "Storage failure during %s",
                operation,
                extra={"operation": operation, "cause": repr(e.cause) if e.cause else None},
            )
            detail = str(e.cause or e) if self.expose_errors else None
            raise InternalError(failure_message, detail=detail, logged=True) from e

    def _notify(self, kind: NotificationKind, account: Account, token: str) -> None:
        """Best-effort delivery; the outcome is logged and never changes the caller's result."""
        try:
            delivered = self.notifier.send(kind, account.email, token, account.username)
        except Exception:
            logger.warning(
                "Notifier raised; continuing without delivery",
                exc_info=True,
                extra={"kind": kind.value, "account_id": account.id},
            )
            return
        if not delivered:
            logger.warning(
                "Notification not delivered",
                extra={"kind": kind.value, "account_id": account.id},
            )

    def register(
        self,
        username: str | None,
        email: str | None,
        password: str | None,
        role: str | None = "user",
        actor: Identity | None = None,
    ) -> RegistrationResult:
        """
        Create an unverified account and send its verification token.

        No session token is issued; the account can log in only after
        verify_email succeeds.
        """
        if not (_present(username) and _present(email) and _present(password)):
            raise ValidationError(FIELDS_REQUIRED)
        if len(username) > USERNAME_MAX_LEN:
            raise ValidationError(f"Username must be at most {USERNAME_MAX_LEN} characters")
        if not is_valid_email(email):
            raise ValidationError(INVALID_EMAIL)
        if len(password) < PASSWORD_MIN_LEN:
            raise ValidationError(PASSWORD_TOO_SHORT)
        role = role or "user"
        if role not in ROLES:
            raise ValidationError('Role must be either "admin" or "user"')
        if role == "admin" and (actor is None or not actor.is_admin):
            logger.warning(
                "Admin registration refused",
                extra={"actor_id": actor.id if actor else None, "to": redact_email(email)},
            )
            raise ForbiddenError(ADMIN_ONLY)

        with self._storage("register", "Registration failed"):
            if self.store.find_by_email(email) is not None:
                raise ConflictError(EMAIL_TAKEN)
            if self.store.find_by_username(username) is not None:
                raise ConflictError(USERNAME_TAKEN)

            token = generate_lifecycle_token()
            new = NewAccount(
                username=username,
                email=email,
                password_hash=hash_password(password, self.bcrypt_rounds),
                role=role,
                email_verified=False,
                verification_token=token,
                verification_token_expires=self._now() + self.verification_ttl,
            )
            try:
                account = self.store.create(new)
            except DuplicateAccountError as e:
                # Lost a race with a concurrent registration; the unique index decided.
                raise ConflictError(EMAIL_TAKEN if e.field == "email" else USERNAME_TAKEN) from e

        logger.info(
            "Account registered",
            extra={"account_id": account.id, "role": role, "actor_id": actor.id if actor else None},
        )
        self._notify(NotificationKind.EMAIL_VERIFICATION, account, token)
        return RegistrationResult(account_id=account.id, email=account.email)

    def verify_email(self, token: str | None) -> Account:
        """Consume a verification token; unknown and expired tokens fail identically."""
        if not _present(token):
            raise ValidationError("Verification token is required")
        with self._storage("verify_email", "Email verification failed"):
            account = self.store.consume_verification_token(token, self._now())
        if account is None:
            raise InvalidTokenError(INVALID_VERIFICATION_TOKEN)
        logger.info("Email verified", extra={"account_id": account.id})
        return account

    def login(self, email: str | None, password: str | None) -> LoginResult:
        """
        Exchange credentials for a bearer token.

        Unknown email and wrong password share one message. An unverified
        account is reported as such even when the password is correct.
        """
        if not (_present(email) and _present(password)):
            raise ValidationError("Email and password are required")
        with self._storage("login", "Login failed"):
            account = self.store.find_by_email(email)
        if account is None:
            logger.info("Login rejected", extra={"reason": "unknown_email"})
            raise AuthenticationError(INVALID_CREDENTIALS)
        if not account.email_verified:
            logger.info("Login rejected", extra={"reason": "unverified", "account_id": account.id})
            raise ForbiddenError(VERIFY_FIRST, error_code="email_not_verified")
        if not verify_password(password, account.password_hash):
            logger.info("Login rejected", extra={"reason": "bad_password", "account_id": account.id})
            raise AuthenticationError(INVALID_CREDENTIALS)

        token = self.codec.mint(account.id, account.role)
        logger.info("Login succeeded", extra={"account_id": account.id})
        return LoginResult(token=token, account=account)

    def request_password_reset(self, email: str | None) -> str:
        """
        Issue a reset token if the email belongs to an account.

        Returns the same message whether or not the account exists, and
        whether or not delivery succeeds.
        """
        if not _present(email):
            raise ValidationError("Email is required")
        if not is_valid_email(email):
            raise ValidationError(INVALID_EMAIL)

        token: str | None = None
        with self._storage("request_password_reset", "Password reset request failed"):
            account = self.store.find_by_email(email)
            if account is not None:
                issued = generate_lifecycle_token()
                if self.store.set_reset_token(account.id, issued, self._now() + self.reset_ttl):
                    token = issued

        if account is not None and token is not None:
            logger.info("Password reset token issued", extra={"account_id": account.id})
            self._notify(NotificationKind.PASSWORD_RESET, account, token)
        elif account is not None:
            # Account vanished between lookup and write; nothing was stored, so nothing is sent.
            logger.warning("Password reset token not stored", extra={"account_id": account.id})
        else:
            logger.info("Password reset requested for unknown email", extra={"to": redact_email(email)})
        return RESET_REQUESTED

    def reset_password(self, reset_token: str | None, new_password: str | None) -> Account:
        """Set a new password and clear the reset token in the same write."""
        if not _present(reset_token):
            raise ValidationError("Reset token is required")
        if len(reset_token) < LIFECYCLE_TOKEN_MIN_LEN:
            raise ValidationError("Invalid reset token format")
        if not isinstance(new_password, str) or new_password == "":
            raise ValidationError("New password is required.")
        if len(new_password) < PASSWORD_MIN_LEN:
            raise ValidationError(PASSWORD_TOO_SHORT)

        password_hash = hash_password(new_password, self.bcrypt_rounds)
        with self._storage("reset_password", "Password reset failed"):
            account = self.store.consume_reset_token(reset_token, password_hash, self._now())
        if account is None:
            raise InvalidTokenError(INVALID_RESET_TOKEN)
        logger.info("Password reset completed", extra={"account_id": account.id})
        return account

    def authorize(self, bearer_token: str | None) -> Identity:
        """Resolve a bearer token to the account it was minted for."""
        if not _present(bearer_token):
            raise AuthenticationError("Access token required")
        try:
            claims = self.codec.verify(bearer_token)
        except SessionTokenError as e:
            code = "token_expired" if e.kind == "expired" else "invalid_token"
            raise AuthenticationError(e.message, error_code=code) from e
        with self._storage("authorize", "Authentication failed"):
            account = self.store.find_by_id(claims.account_id)
        if account is None:
            raise AuthenticationError("User not found")
        return Identity(
            id=account.id,
            username=account.username,
            email=account.email,
            role=account.role,
        )

    def get_profile(self, identity: Identity) -> Account:
        with self._storage("get_profile", "Failed to get profile"):
            account = self.store.find_by_id(identity.id)
        if account is None:
            raise NotFoundError("User not found")
        return account

    def update_profile(self, identity: Identity, username: str | None, email: str | None) -> Account:
        """Change username and email; the role is left as is."""
        if not (_present(username) and _present(email)):
            raise ValidationError("Username and email are required")
        if len(username) > USERNAME_MAX_LEN:
            raise ValidationError(f"Username must be at most {USERNAME_MAX_LEN} characters")
        if not is_valid_email(email):
            raise ValidationError(INVALID_EMAIL)

        with self._storage("update_profile", "Failed to update profile"):
            existing = self.store.find_by_email(email)
            if existing is not None and existing.id != identity.id:
                raise ConflictError("Email already taken by another user")
            existing = self.store.find_by_username(username)
            if existing is not None and existing.id != identity.id:
                raise ConflictError(USERNAME_TAKEN)
            try:
                account = self.store.update_profile(identity.id, username, email)
            except DuplicateAccountError as e:
                raise ConflictError(
                    "Email already taken by another user" if e.field == "email" else USERNAME_TAKEN
                ) from e
        if account is None:
            raise NotFoundError("User not found")
        logger.info("Profile updated", extra={"account_id": account.id})
        return account


def build_lifecycle(
    session: Session,
    settings: Settings,
    notifier: Notifier,
) -> CredentialLifecycle:
    """Wire the engine to the SQL store and settings for one request."""
    codec = TokenCodec(
        settings.JWT_SECRET.get_secret_value(),
        algorithm=settings.JWT_ALGORITHM,
        expire_minutes=settings.JWT_EXPIRE_MINUTES,
    )
    return CredentialLifecycle(
        SqlAccountStore(session),
        codec,
        notifier,
        bcrypt_rounds=settings.BCRYPT_ROUNDS,
        verification_ttl=timedelta(hours=settings.VERIFICATION_TOKEN_TTL_HOURS),
        reset_ttl=timedelta(hours=settings.RESET_TOKEN_TTL_HOURS),
        expose_errors=settings.APP_ENV == "dev",
    )
