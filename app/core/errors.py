"""Service and storage exceptions mapped to HTTP responses by app.main."""

from __future__ import annotations


class ServiceError(Exception):
    """Base class for service-layer exceptions.

    Each subclass carries the HTTP status and a stable error code:
    validation_error (400), unauthorized (401), forbidden (403),
    not_found (404), conflict (409), server_error (500).
    """

    status_code: int = 400
    error_code: str = "validation_error"

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        error_code: str | None = None,
        detail: str | None = None,
        logged: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if error_code is not None:
            self.error_code = error_code
        self.detail = detail
        # True when the raiser already wrote a log record for this failure.
        self.logged = logged


class ValidationError(ServiceError):
    """Malformed or missing input (400)."""

    status_code = 400
    error_code = "validation_error"


class InvalidTokenError(ValidationError):
    """Lifecycle token unknown, already used, or expired (400)."""

    error_code = "invalid_or_expired_token"


class AuthenticationError(ServiceError):
    """Bad credentials or missing/invalid/expired bearer token (401)."""

    status_code = 401
    error_code = "unauthorized"


class ForbiddenError(ServiceError):
    """Role or ownership violation (403)."""

    status_code = 403
    error_code = "forbidden"


class NotFoundError(ServiceError):
    """Referenced entity absent (404)."""

    status_code = 404
    error_code = "not_found"


class ConflictError(ServiceError):
    """Uniqueness violation (409)."""

    status_code = 409
    error_code = "conflict"


class InternalError(ServiceError):
    """Storage or delivery failure not otherwise classified (500)."""

    status_code = 500
    error_code = "server_error"


class StorageError(Exception):
    """Raised by account stores when the backing storage fails."""

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        self.message = message
        self.cause = cause
        super().__init__(message)


class DuplicateAccountError(StorageError):
    """Raised when a write would violate username or email uniqueness."""

    def __init__(self, field: str, cause: BaseException | None = None) -> None:
        self.field = field
        super().__init__(f"Duplicate account {field}", cause=cause)
