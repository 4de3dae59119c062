"""Unit tests for the credential lifecycle engine against the in-memory account store."""

import threading
import unittest
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock, patch

from app.core.errors import (
    AuthenticationError,
    ConflictError,
    ForbiddenError,
    InternalError,
    InvalidTokenError,
    StorageError,
    ValidationError,
)
from app.core.security import TokenCodec, verify_password
from app.services.credentials import (
    INVALID_CREDENTIALS,
    INVALID_RESET_TOKEN,
    INVALID_VERIFICATION_TOKEN,
    RESET_REQUESTED,
    CredentialLifecycle,
    Identity,
)
from app.services.memory_store import InMemoryAccountStore
from app.services.notifications import NotificationKind


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2025, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class RecordingNotifier:
    """Keeps every send() call so tests can read the tokens that were issued."""

    def __init__(self, result: bool = True) -> None:
        self.result = result
        self.sent: list[tuple[NotificationKind, str, str, str]] = []
        self._lock = threading.Lock()

    def send(self, kind, address, token, display_name) -> bool:
        with self._lock:
            self.sent.append((kind, address, token, display_name))
        return self.result

    def last_token(self, kind: NotificationKind) -> str:
        for sent_kind, _, token, _ in reversed(self.sent):
            if sent_kind == kind:
                return token
        raise AssertionError(f"no {kind.value} notification sent")


class LifecycleTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.store = InMemoryAccountStore()
        self.codec = TokenCodec("engine-test-secret-0123456789abcdef01")
        self.notifier = RecordingNotifier()
        self.clock = FakeClock()
        self.engine = CredentialLifecycle(
            self.store,
            self.codec,
            self.notifier,
            bcrypt_rounds=4,
            clock=self.clock,
        )

    def register_and_verify(self, username="alice", email="a@x.io", password="secret1") -> int:
        result = self.engine.register(username, email, password)
        self.engine.verify_email(self.notifier.last_token(NotificationKind.EMAIL_VERIFICATION))
        return result.account_id


class TestFullLifecycle(LifecycleTestCase):
    """register -> verify -> login -> forgot -> reset -> login with the new password."""

    def test_end_to_end(self) -> None:
        result = self.engine.register("alice", "a@x.io", "secret1")
        self.assertEqual(result.email, "a@x.io")
        account = self.store.find_by_id(result.account_id)
        self.assertFalse(account.email_verified)
        self.assertNotEqual(account.password_hash, "secret1")

        token = self.notifier.last_token(NotificationKind.EMAIL_VERIFICATION)
        verified = self.engine.verify_email(token)
        self.assertTrue(verified.email_verified)
        self.assertIsNone(verified.verification_token)

        login = self.engine.login("a@x.io", "secret1")
        self.assertEqual(self.codec.verify(login.token).account_id, result.account_id)

        self.assertEqual(self.engine.request_password_reset("a@x.io"), RESET_REQUESTED)
        reset_token = self.notifier.last_token(NotificationKind.PASSWORD_RESET)
        self.engine.reset_password(reset_token, "newpass1")

        with self.assertRaises(AuthenticationError):
            self.engine.login("a@x.io", "secret1")
        self.engine.login("a@x.io", "newpass1")

    def test_notifications_carry_address_and_username(self) -> None:
        self.engine.register("alice", "a@x.io", "secret1")
        kind, address, token, name = self.notifier.sent[0]
        self.assertEqual(kind, NotificationKind.EMAIL_VERIFICATION)
        self.assertEqual(address, "a@x.io")
        self.assertEqual(name, "alice")
        self.assertEqual(len(token), 64)


class TestRegister(LifecycleTestCase):
    def test_missing_fields(self) -> None:
        for args in [("", "a@x.io", "secret1"), ("alice", None, "secret1"), ("alice", "a@x.io", "  ")]:
            with self.assertRaises(ValidationError):
                self.engine.register(*args)
        self.assertEqual(self.notifier.sent, [])

    def test_invalid_email(self) -> None:
        with self.assertRaises(ValidationError):
            self.engine.register("alice", "not-an-email", "secret1")

    def test_password_length_boundary(self) -> None:
        with self.assertRaises(ValidationError):
            self.engine.register("alice", "a@x.io", "12345")
        self.engine.register("alice", "a@x.io", "123456")

    def test_duplicate_email_and_username(self) -> None:
        self.engine.register("alice", "a@x.io", "secret1")
        with self.assertRaises(ConflictError) as ctx:
            self.engine.register("bob", "a@x.io", "secret1")
        self.assertEqual(ctx.exception.message, "User with this email already exists")
        with self.assertRaises(ConflictError) as ctx:
            self.engine.register("alice", "b@x.io", "secret1")
        self.assertEqual(ctx.exception.message, "Username already taken")

    def test_anonymous_admin_is_forbidden(self) -> None:
        with self.assertRaises(ForbiddenError):
            self.engine.register("root", "r@x.io", "secret1", role="admin")
        self.assertIsNone(self.store.find_by_email("r@x.io"))

    def test_non_admin_actor_cannot_create_admin(self) -> None:
        actor = Identity(id=1, username="alice", email="a@x.io", role="user")
        with self.assertRaises(ForbiddenError):
            self.engine.register("root", "r@x.io", "secret1", role="admin", actor=actor)

    def test_admin_actor_creates_unverified_admin(self) -> None:
        actor = Identity(id=99, username="boss", email="boss@x.io", role="admin")
        result = self.engine.register("root", "r@x.io", "secret1", role="admin", actor=actor)
        account = self.store.find_by_id(result.account_id)
        self.assertEqual(account.role, "admin")
        self.assertFalse(account.email_verified)

    def test_unknown_role(self) -> None:
        with self.assertRaises(ValidationError):
            self.engine.register("alice", "a@x.io", "secret1", role="owner")

    def test_concurrent_registration_yields_one_conflict(self) -> None:
        barrier = threading.Barrier(2)

        def attempt(username: str):
            barrier.wait()
            try:
                return self.engine.register(username, "same@x.io", "secret1")
            except ConflictError as e:
                return e

        with ThreadPoolExecutor(max_workers=2) as pool:
            outcomes = list(pool.map(attempt, ["first", "second"]))

        conflicts = [o for o in outcomes if isinstance(o, ConflictError)]
        self.assertEqual(len(conflicts), 1)
        self.assertEqual(len(outcomes) - len(conflicts), 1)


class TestVerifyEmail(LifecycleTestCase):
    def test_login_refused_before_verification(self) -> None:
        self.engine.register("alice", "a@x.io", "secret1")
        with self.assertRaises(ForbiddenError) as ctx:
            self.engine.login("a@x.io", "secret1")
        self.assertEqual(ctx.exception.error_code, "email_not_verified")

    def test_token_is_single_use(self) -> None:
        self.engine.register("alice", "a@x.io", "secret1")
        token = self.notifier.last_token(NotificationKind.EMAIL_VERIFICATION)
        self.engine.verify_email(token)
        with self.assertRaises(InvalidTokenError) as ctx:
            self.engine.verify_email(token)
        self.assertEqual(ctx.exception.message, INVALID_VERIFICATION_TOKEN)

    def test_expired_token_matches_unknown_token(self) -> None:
        self.engine.register("alice", "a@x.io", "secret1")
        token = self.notifier.last_token(NotificationKind.EMAIL_VERIFICATION)
        self.clock.advance(hours=25)
        with self.assertRaises(InvalidTokenError) as expired:
            self.engine.verify_email(token)
        with self.assertRaises(InvalidTokenError) as unknown:
            self.engine.verify_email("f" * 64)
        self.assertEqual(expired.exception.message, unknown.exception.message)
        self.assertFalse(self.store.find_by_email("a@x.io").email_verified)

    def test_empty_token(self) -> None:
        with self.assertRaises(ValidationError):
            self.engine.verify_email("")


class TestLogin(LifecycleTestCase):
    def test_unknown_email_and_bad_password_look_alike(self) -> None:
        self.register_and_verify()
        with self.assertRaises(AuthenticationError) as unknown:
            self.engine.login("nobody@x.io", "secret1")
        with self.assertRaises(AuthenticationError) as wrong:
            self.engine.login("a@x.io", "wrong-pass")
        self.assertEqual(unknown.exception.message, INVALID_CREDENTIALS)
        self.assertEqual(wrong.exception.message, INVALID_CREDENTIALS)

    def test_missing_fields(self) -> None:
        with self.assertRaises(ValidationError):
            self.engine.login("a@x.io", "")

    def test_result_account_has_role(self) -> None:
        self.register_and_verify()
        result = self.engine.login("a@x.io", "secret1")
        self.assertEqual(result.account.public()["role"], "user")
        self.assertNotIn("password_hash", result.account.public())


class TestPasswordReset(LifecycleTestCase):
    def test_response_is_identical_for_known_and_unknown_email(self) -> None:
        self.register_and_verify()
        known = self.engine.request_password_reset("a@x.io")
        unknown = self.engine.request_password_reset("ghost@x.io")
        self.assertEqual(known, unknown)
        kinds = [sent[0] for sent in self.notifier.sent]
        self.assertEqual(kinds.count(NotificationKind.PASSWORD_RESET), 1)

    def test_invalid_email_is_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            self.engine.request_password_reset("nope")

    def test_reset_available_to_unverified_account(self) -> None:
        self.engine.register("alice", "a@x.io", "secret1")
        self.engine.request_password_reset("a@x.io")
        token = self.notifier.last_token(NotificationKind.PASSWORD_RESET)
        account = self.engine.reset_password(token, "newpass1")
        self.assertTrue(verify_password("newpass1", account.password_hash))
        self.assertFalse(account.email_verified)

    def test_new_request_replaces_previous_token(self) -> None:
        self.register_and_verify()
        self.engine.request_password_reset("a@x.io")
        first = self.notifier.last_token(NotificationKind.PASSWORD_RESET)
        self.engine.request_password_reset("a@x.io")
        second = self.notifier.last_token(NotificationKind.PASSWORD_RESET)
        with self.assertRaises(InvalidTokenError):
            self.engine.reset_password(first, "newpass1")
        self.engine.reset_password(second, "newpass1")

    def test_reset_token_is_single_use(self) -> None:
        self.register_and_verify()
        self.engine.request_password_reset("a@x.io")
        token = self.notifier.last_token(NotificationKind.PASSWORD_RESET)
        self.engine.reset_password(token, "newpass1")
        with self.assertRaises(InvalidTokenError):
            self.engine.reset_password(token, "newpass2")
        self.engine.login("a@x.io", "newpass1")

    def test_expired_reset_token_matches_unknown_token(self) -> None:
        self.register_and_verify()
        self.engine.request_password_reset("a@x.io")
        token = self.notifier.last_token(NotificationKind.PASSWORD_RESET)
        self.clock.advance(hours=1, seconds=1)
        with self.assertRaises(InvalidTokenError) as expired:
            self.engine.reset_password(token, "newpass1")
        with self.assertRaises(InvalidTokenError) as unknown:
            self.engine.reset_password("0" * 64, "newpass1")
        self.assertEqual(expired.exception.message, INVALID_RESET_TOKEN)
        self.assertEqual(unknown.exception.message, INVALID_RESET_TOKEN)
        self.engine.login("a@x.io", "secret1")

    def test_reset_input_validation(self) -> None:
        with self.assertRaises(ValidationError):
            self.engine.reset_password("", "newpass1")
        with self.assertRaises(ValidationError):
            self.engine.reset_password("short", "newpass1")
        with self.assertRaises(ValidationError):
            self.engine.reset_password("a" * 64, "12345")

    def test_six_character_password_accepted_on_reset(self) -> None:
        self.register_and_verify()
        self.engine.request_password_reset("a@x.io")
        token = self.notifier.last_token(NotificationKind.PASSWORD_RESET)
        self.engine.reset_password(token, "abcdef")
        result = self.engine.login("a@x.io", "abcdef")
        self.assertEqual(result.account.email, "a@x.io")

    def test_unstored_reset_token_is_not_sent(self) -> None:
        self.register_and_verify()
        sent_before = len(self.notifier.sent)
        with patch.object(self.store, "set_reset_token", return_value=False):
            message = self.engine.request_password_reset("a@x.io")
        self.assertEqual(message, RESET_REQUESTED)
        self.assertEqual(len(self.notifier.sent), sent_before)

    def test_password_change_revokes_pending_reset_token(self) -> None:
        account_id = self.register_and_verify()
        self.engine.request_password_reset("a@x.io")
        token = self.notifier.last_token(NotificationKind.PASSWORD_RESET)
        self.assertTrue(self.store.update_password(account_id, "changed-hash"))
        self.assertIsNone(self.store.find_by_reset_token(token, self.clock()))
        with self.assertRaises(InvalidTokenError):
            self.engine.reset_password(token, "newpass1")


class TestAuthorize(LifecycleTestCase):
    def test_valid_token_resolves_current_role(self) -> None:
        account_id = self.register_and_verify()
        token = self.engine.login("a@x.io", "secret1").token
        identity = self.engine.authorize(token)
        self.assertEqual(identity.id, account_id)
        self.assertFalse(identity.is_admin)

    def test_missing_token(self) -> None:
        with self.assertRaises(AuthenticationError) as ctx:
            self.engine.authorize(None)
        self.assertEqual(ctx.exception.message, "Access token required")

    def test_expired_token(self) -> None:
        account_id = self.register_and_verify()
        token = self.codec.mint(account_id, "user", now=datetime.now(UTC) - timedelta(days=2))
        with self.assertRaises(AuthenticationError) as ctx:
            self.engine.authorize(token)
        self.assertEqual(ctx.exception.error_code, "token_expired")

    def test_forged_token(self) -> None:
        account_id = self.register_and_verify()
        token = TokenCodec("attacker-secret-0123456789abcdef012345").mint(account_id, "admin")
        with self.assertRaises(AuthenticationError) as ctx:
            self.engine.authorize(token)
        self.assertEqual(ctx.exception.error_code, "invalid_token")

    def test_deleted_account(self) -> None:
        token = self.codec.mint(12345, "user")
        with self.assertRaises(AuthenticationError) as ctx:
            self.engine.authorize(token)
        self.assertEqual(ctx.exception.message, "User not found")


class TestProfile(LifecycleTestCase):
    def test_update_profile_conflicts(self) -> None:
        alice_id = self.register_and_verify()
        self.register_and_verify("bob", "b@x.io")
        alice = self.engine.authorize(self.codec.mint(alice_id, "user"))
        with self.assertRaises(ConflictError):
            self.engine.update_profile(alice, "alice", "b@x.io")
        with self.assertRaises(ConflictError):
            self.engine.update_profile(alice, "bob", "a@x.io")
        updated = self.engine.update_profile(alice, "alice2", "a2@x.io")
        self.assertEqual((updated.username, updated.email), ("alice2", "a2@x.io"))
        self.assertEqual(self.engine.get_profile(alice).username, "alice2")


class TestCollaboratorFailures(LifecycleTestCase):
    def test_notifier_exception_does_not_fail_registration(self) -> None:
        self.engine.notifier = MagicMock()
        self.engine.notifier.send.side_effect = RuntimeError("smtp exploded")
        result = self.engine.register("alice", "a@x.io", "secret1")
        self.assertIsNotNone(self.store.find_by_id(result.account_id))

    def test_undelivered_reset_keeps_generic_response(self) -> None:
        self.register_and_verify()
        self.engine.notifier = RecordingNotifier(result=False)
        self.assertEqual(self.engine.request_password_reset("a@x.io"), RESET_REQUESTED)

    def test_storage_failure_becomes_internal_error(self) -> None:
        store = MagicMock()
        store.find_by_email.side_effect = StorageError("db down", cause=OSError("refused"))
        engine = CredentialLifecycle(store, self.codec, self.notifier, bcrypt_rounds=4)
        with self.assertRaises(InternalError) as ctx:
            engine.login("a@x.io", "secret1")
        self.assertEqual(ctx.exception.status_code, 500)
        self.assertIsNone(ctx.exception.detail)

    def test_storage_failure_detail_exposed_when_enabled(self) -> None:
        store = MagicMock()
        store.find_by_email.side_effect = StorageError("db down", cause=OSError("refused"))
        engine = CredentialLifecycle(
            store, self.codec, self.notifier, bcrypt_rounds=4, expose_errors=True
        )
        with self.assertRaises(InternalError) as ctx:
            engine.request_password_reset("a@x.io")
        self.assertEqual(ctx.exception.detail, "refused")


if __name__ == "__main__":
    unittest.main()
