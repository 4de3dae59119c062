"""In-process AccountStore used by tests and local experiments."""

from __future__ import annotations

import threading
from dataclasses import replace
from datetime import UTC, datetime
from itertools import count

from app.core.errors import DuplicateAccountError
from app.services.account_store import Account, NewAccount


class InMemoryAccountStore:
    """
    Dict-backed AccountStore.

    A single lock makes each method atomic, which stands in for the unique
    indexes and conditional UPDATEs of the SQL store. Records handed out are
    copies, so callers cannot mutate stored state.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._accounts: dict[int, Account] = {}
        self._ids = count(1)

    def _copy(self, account: Account | None) -> Account | None:
        return replace(account) if account is not None else None

    def _first(self, predicate) -> Account | None:
        for account in self._accounts.values():
            if predicate(account):
                return account
        return None

    def find_by_id(self, account_id: int) -> Account | None:
        with self._lock:
            return self._copy(self._accounts.get(account_id))

    def find_by_email(self, email: str) -> Account | None:
        with self._lock:
            return self._copy(self._first(lambda a: a.email == email))

    def find_by_username(self, username: str) -> Account | None:
        with self._lock:
            return self._copy(self._first(lambda a: a.username == username))

    def create(self, new: NewAccount) -> Account:
        with self._lock:
            if self._first(lambda a: a.email == new.email) is not None:
                raise DuplicateAccountError("email")
            if self._first(lambda a: a.username == new.username) is not None:
                raise DuplicateAccountError("username")
            account = Account(
                id=next(self._ids),
                username=new.username,
                email=new.email,
                password_hash=new.password_hash,
                role=new.role,
                email_verified=new.email_verified,
                verification_token=new.verification_token,
                verification_token_expires=new.verification_token_expires,
                created_at=datetime.now(UTC),
            )
            self._accounts[account.id] = account
            return replace(account)

    def update_password(self, account_id: int, password_hash: str) -> bool:
        with self._lock:
            account = self._accounts.get(account_id)
            if account is None:
                return False
            account.password_hash = password_hash
            account.reset_token = None
            account.reset_token_expires = None
            return True

    def update_profile(self, account_id: int, username: str, email: str) -> Account | None:
        with self._lock:
            account = self._accounts.get(account_id)
            if account is None:
                return None
            if self._first(lambda a: a.email == email and a.id != account_id) is not None:
                raise DuplicateAccountError("email")
            if self._first(lambda a: a.username == username and a.id != account_id) is not None:
                raise DuplicateAccountError("username")
            account.username = username
            account.email = email
            return replace(account)

    def set_verification_token(self, account_id: int, token: str, expires: datetime) -> bool:
        with self._lock:
            account = self._accounts.get(account_id)
            if account is None:
                return False
            account.verification_token = token
            account.verification_token_expires = expires
            return True

    def clear_verification_token(self, account_id: int) -> bool:
        with self._lock:
            account = self._accounts.get(account_id)
            if account is None:
                return False
            account.verification_token = None
            account.verification_token_expires = None
            return True

    def _live_verification(self, token: str, now: datetime) -> Account | None:
        return self._first(
            lambda a: a.verification_token == token
            and a.verification_token_expires is not None
            and a.verification_token_expires > now
        )

    def find_by_verification_token(self, token: str, now: datetime) -> Account | None:
        with self._lock:
            return self._copy(self._live_verification(token, now))

    def consume_verification_token(self, token: str, now: datetime) -> Account | None:
        with self._lock:
            account = self._live_verification(token, now)
            if account is None:
                return None
            account.email_verified = True
            account.verification_token = None
            account.verification_token_expires = None
            return replace(account)

    def set_reset_token(self, account_id: int, token: str, expires: datetime) -> bool:
        with self._lock:
            account = self._accounts.get(account_id)
            if account is None:
                return False
            account.reset_token = token
            account.reset_token_expires = expires
            return True

    def clear_reset_token(self, account_id: int) -> bool:
        with self._lock:
            account = self._accounts.get(account_id)
            if account is None:
                return False
            account.reset_token = None
            account.reset_token_expires = None
            return True

    def _live_reset(self, token: str, now: datetime) -> Account | None:
        return self._first(
            lambda a: a.reset_token == token
            and a.reset_token_expires is not None
            and a.reset_token_expires > now
        )

    def find_by_reset_token(self, token: str, now: datetime) -> Account | None:
        with self._lock:
            return self._copy(self._live_reset(token, now))

    def consume_reset_token(self, token: str, password_hash: str, now: datetime) -> Account | None:
        with self._lock:
            account = self._live_reset(token, now)
            if account is None:
                return None
            account.password_hash = password_hash
            account.reset_token = None
            account.reset_token_expires = None
            return replace(account)
