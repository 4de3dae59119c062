"""Password hashing, lifecycle tokens and JWT session tokens."""

import secrets
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any, Literal

import bcrypt
import jwt

# Bcrypt cost (rounds); 12 is a good default for security vs speed.
BCRYPT_ROUNDS = 12

# Lifecycle tokens are 32 random bytes rendered as 64 hex chars.
LIFECYCLE_TOKEN_BYTES = 32
LIFECYCLE_TOKEN_MIN_LEN = 32

PASSWORD_MIN_LEN = 6
USERNAME_MAX_LEN = 255
EMAIL_MAX_LEN = 255

TokenErrorKind = Literal["expired", "invalid_signature", "malformed"]


def hash_password(plain_password: str, rounds: int = BCRYPT_ROUNDS) -> str:
    """Hash a plain-text password for storage. Do not store plain passwords."""
    # bcrypt has a 72-byte limit; truncate to avoid errors.
    pw_bytes = plain_password.encode("utf-8")[:72]
    return bcrypt.hashpw(pw_bytes, bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain_password: str, hashed: str) -> bool:
    """Verify a plain password against a stored hash."""
    pw_bytes = plain_password.encode("utf-8")[:72]
    try:
        return bcrypt.checkpw(pw_bytes, hashed.encode("utf-8"))
    except (ValueError, TypeError):
        return False


def generate_lifecycle_token() -> str:
    """Opaque single-use token for email verification and password reset."""
    return secrets.token_hex(LIFECYCLE_TOKEN_BYTES)


@dataclass(frozen=True)
class SessionClaims:
    account_id: int
    role: str | None


class SessionTokenError(Exception):
    """Raised when a bearer token cannot be accepted; kind says why."""

    def __init__(self, kind: TokenErrorKind, message: str) -> None:
        self.kind = kind
        self.message = message
        super().__init__(message)


class TokenCodec:
    """Mints and verifies signed, time-bound session tokens (JWT)."""

    def __init__(self, secret: str, algorithm: str = "HS256", expire_minutes: int = 1440) -> None:
        self._secret = secret
        self.algorithm = algorithm
        self.expire_minutes = expire_minutes

    def mint(self, account_id: int, role: str, now: datetime | None = None) -> str:
        """Create a JWT with sub (account id), role, iat and exp."""
        issued = now or datetime.now(UTC)
        payload: dict[str, Any] = {
            "sub": str(account_id),
            "role": role,
            "iat": issued,
            "exp": issued + timedelta(minutes=self.expire_minutes),
        }
        return jwt.encode(payload, self._secret, algorithm=self.algorithm)

    def verify(self, token: str) -> SessionClaims:
        """
        Decode and validate a JWT; return its claims.
        Raises SessionTokenError with kind expired, invalid_signature or malformed.
        """
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self.algorithm],
                options={"require": ["exp", "sub"]},
            )
        except jwt.ExpiredSignatureError as e:
            raise SessionTokenError("expired", "Token expired") from e
        except jwt.InvalidSignatureError as e:
            raise SessionTokenError("invalid_signature", "Invalid token") from e
        except jwt.PyJWTError as e:
            raise SessionTokenError("malformed", "Invalid token") from e

        try:
            account_id = int(payload["sub"])
        except (KeyError, TypeError, ValueError) as e:
            raise SessionTokenError("malformed", "Invalid token payload") from e
        role = payload.get("role")
        return SessionClaims(account_id=account_id, role=role if isinstance(role, str) else None)
