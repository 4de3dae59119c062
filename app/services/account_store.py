"""Account records and the persistence capability used by the credential lifecycle.

`Account` is a plain snapshot of a `users` row. `AccountStore` is the
interface the lifecycle engine depends on; `SqlAccountStore` implements it on
a SQLAlchemy session and `app.services.memory_store.InMemoryAccountStore` is
the in-process implementation used in tests.

Lookups return None when nothing matches. Storage failures surface as
StorageError and uniqueness violations as DuplicateAccountError, never as
driver exceptions.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import DuplicateAccountError, StorageError
from app.models import User

logger = logging.getLogger(__name__)


@dataclass
class Account:
    id: int
    username: str
    email: str
    password_hash: str = field(repr=False)
    role: str = "user"
    email_verified: bool = False
    verification_token: str | None = field(default=None, repr=False)
    verification_token_expires: datetime | None = None
    reset_token: str | None = field(default=None, repr=False)
    reset_token_expires: datetime | None = None
    created_at: datetime | None = None

    def public(self) -> dict[str, Any]:
        """Projection safe to return to clients."""
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "role": self.role,
        }


@dataclass
class NewAccount:
    username: str
    email: str
    password_hash: str = field(repr=False)
    role: str = "user"
    email_verified: bool = False
    verification_token: str | None = field(default=None, repr=False)
    verification_token_expires: datetime | None = None


class AccountStore(Protocol):
    def find_by_id(self, account_id: int) -> Account | None: ...

    def find_by_email(self, email: str) -> Account | None: ...

    def find_by_username(self, username: str) -> Account | None: ...

    def create(self, new: NewAccount) -> Account: ...

    def update_password(self, account_id: int, password_hash: str) -> bool: ...

    def update_profile(self, account_id: int, username: str, email: str) -> Account | None: ...

    def set_verification_token(self, account_id: int, token: str, expires: datetime) -> bool: ...

    def clear_verification_token(self, account_id: int) -> bool: ...

    def find_by_verification_token(self, token: str, now: datetime) -> Account | None: ...

    def consume_verification_token(self, token: str, now: datetime) -> Account | None: ...

    def set_reset_token(self, account_id: int, token: str, expires: datetime) -> bool: ...

    def clear_reset_token(self, account_id: int) -> bool: ...

    def find_by_reset_token(self, token: str, now: datetime) -> Account | None: ...

    def consume_reset_token(self, token: str, password_hash: str, now: datetime) -> Account | None: ...


def account_from_row(row: User) -> Account:
    return Account(
        id=row.id,
        username=row.username,
        email=row.email,
        password_hash=row.password_hash,
        role=row.role,
        email_verified=bool(row.email_verified),
        verification_token=row.verification_token,
        verification_token_expires=row.verification_token_expires,
        reset_token=row.reset_token,
        reset_token_expires=row.reset_token_expires,
        created_at=row.created_at,
    )


class SqlAccountStore:
    """AccountStore over a SQLAlchemy session. Every write commits on its own."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def _one(self, *criteria: Any) -> Account | None:
        try:
            row = self.session.execute(select(User).where(*criteria)).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StorageError("Account lookup failed", cause=e) from e
        return account_from_row(row) if row is not None else None

    def _update(self, *criteria: Any, owner_id: int | None = None, **values: Any) -> int:
        """Run one conditional UPDATE and commit; return affected row count."""
        try:
            result = self.session.execute(
                update(User).where(*criteria).values(**values).execution_options(
                    synchronize_session=False
                )
            )
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            raise DuplicateAccountError(
                self._conflicting_field(values.get("email"), exclude_id=owner_id),
                cause=e,
            ) from e
        except SQLAlchemyError as e:
            self.session.rollback()
            raise StorageError("Account update failed", cause=e) from e
        return result.rowcount or 0

    def _conflicting_field(self, email: str | None, exclude_id: int | None = None) -> str:
        """Best-effort: find which unique column a failed write collided with."""
        if email is not None:
            stmt = select(User.id).where(User.email == email)
            if exclude_id is not None:
                stmt = stmt.where(User.id != exclude_id)
            try:
                taken = self.session.execute(stmt).first()
            except SQLAlchemyError:
                taken = None
            if taken is not None:
                return "email"
        return "username"

    def find_by_id(self, account_id: int) -> Account | None:
        return self._one(User.id == account_id)

    def find_by_email(self, email: str) -> Account | None:
        return self._one(User.email == email)

    def find_by_username(self, username: str) -> Account | None:
        return self._one(User.username == username)

    def create(self, new: NewAccount) -> Account:
        row = User(
            username=new.username,
            email=new.email,
            password_hash=new.password_hash,
            role=new.role,
            email_verified=new.email_verified,
            verification_token=new.verification_token,
            verification_token_expires=new.verification_token_expires,
        )
        try:
            self.session.add(row)
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            field_name = self._conflicting_field(new.email)
            raise DuplicateAccountError(field_name, cause=e) from e
        except SQLAlchemyError as e:
            self.session.rollback()
            raise StorageError("Account insert failed", cause=e) from e
        try:
            self.session.refresh(row)
        except SQLAlchemyError as e:
            raise StorageError("Account reload failed", cause=e) from e
        return account_from_row(row)

    def update_password(self, account_id: int, password_hash: str) -> bool:
        """Replace the hash; any pending reset token dies in the same UPDATE."""
        return (
            self._update(
                User.id == account_id,
                password_hash=password_hash,
                reset_token=None,
                reset_token_expires=None,
            )
            == 1
        )

    def update_profile(self, account_id: int, username: str, email: str) -> Account | None:
        affected = self._update(
            User.id == account_id,
            owner_id=account_id,
            username=username,
            email=email,
        )
        if affected != 1:
            return None
        return self.find_by_id(account_id)

    def set_verification_token(self, account_id: int, token: str, expires: datetime) -> bool:
        return (
            self._update(
                User.id == account_id,
                verification_token=token,
                verification_token_expires=expires,
            )
            == 1
        )

    def clear_verification_token(self, account_id: int) -> bool:
        return (
            self._update(
                User.id == account_id,
                verification_token=None,
                verification_token_expires=None,
            )
            == 1
        )

    def find_by_verification_token(self, token: str, now: datetime) -> Account | None:
        return self._one(
            User.verification_token == token,
            User.verification_token_expires > now,
        )

    def consume_verification_token(self, token: str, now: datetime) -> Account | None:
        """Mark the owner verified and clear the token in one conditional UPDATE."""
        account = self.find_by_verification_token(token, now)
        if account is None:
            return None
        affected = self._update(
            User.id == account.id,
            User.verification_token == token,
            User.verification_token_expires > now,
            email_verified=True,
            verification_token=None,
            verification_token_expires=None,
        )
        if affected != 1:
            # Another request consumed it between the read and the write.
            return None
        return self.find_by_id(account.id)

    def set_reset_token(self, account_id: int, token: str, expires: datetime) -> bool:
        return (
            self._update(User.id == account_id, reset_token=token, reset_token_expires=expires)
            == 1
        )

    def clear_reset_token(self, account_id: int) -> bool:
        return (
            self._update(User.id == account_id, reset_token=None, reset_token_expires=None)
            == 1
        )

    def find_by_reset_token(self, token: str, now: datetime) -> Account | None:
        return self._one(User.reset_token == token, User.reset_token_expires > now)

    def consume_reset_token(self, token: str, password_hash: str, now: datetime) -> Account | None:
        """Store the new hash and clear the reset token in the same UPDATE."""
        account = self.find_by_reset_token(token, now)
        if account is None:
            return None
        affected = self._update(
            User.id == account.id,
            User.reset_token == token,
            User.reset_token_expires > now,
            password_hash=password_hash,
            reset_token=None,
            reset_token_expires=None,
        )
        if affected != 1:
            return None
        logger.debug("Reset token consumed", extra={"account_id": account.id})
        return self.find_by_id(account.id)
