"""
Create an account directly in the database, already verified (e.g. the first admin,
since anonymous registration cannot request the admin role). Run from project root:
  python -m app.scripts.create_user USERNAME EMAIL PASSWORD [role]
Example:
  python -m app.scripts.create_user admin admin@example.com your-secure-password admin
"""
import argparse
import logging
import sys

from app.core.config import get_settings
from app.core.database import SessionLocal
from app.core.errors import DuplicateAccountError, StorageError
from app.core.logging import configure_logging
from app.core.security import PASSWORD_MIN_LEN, USERNAME_MAX_LEN, hash_password
from app.services.account_store import NewAccount, SqlAccountStore
from app.services.credentials import is_valid_email

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Create a verified Taskledger account.")
    parser.add_argument("username", help=f"Username (1-{USERNAME_MAX_LEN} chars)")
    parser.add_argument("email", help="Email address")
    parser.add_argument("password", help=f"Password (at least {PASSWORD_MIN_LEN} chars)")
    parser.add_argument("role", nargs="?", default="user", choices=["user", "admin"])
    args = parser.parse_args(argv)

    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)

    username = args.username.strip()
    if not username or len(username) > USERNAME_MAX_LEN:
        print("Invalid username length.", file=sys.stderr)
        return 1
    if not is_valid_email(args.email):
        print("Invalid email address.", file=sys.stderr)
        return 1
    if len(args.password) < PASSWORD_MIN_LEN:
        print(f"Password must be at least {PASSWORD_MIN_LEN} characters.", file=sys.stderr)
        return 1

    db = SessionLocal()
    try:
        store = SqlAccountStore(db)
        account = store.create(
            NewAccount(
                username=username,
                email=args.email,
                password_hash=hash_password(args.password, settings.BCRYPT_ROUNDS),
                role=args.role,
                email_verified=True,
            )
        )
    except DuplicateAccountError as e:
        print(f"An account with that {e.field} already exists.", file=sys.stderr)
        return 1
    except StorageError as e:
        logger.exception("Account creation failed: %s", e.message)
        return 1
    finally:
        db.close()

    print(f"Created user '{account.username}' (id {account.id}) with role '{account.role}'.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
