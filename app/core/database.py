"""Database connection pool and session management."""

from collections.abc import Generator
from typing import TYPE_CHECKING, Any

from sqlalchemy import Engine, create_engine, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.core.config import settings

if TYPE_CHECKING:
    from app.core.config import Settings


def build_engine(cfg: "Settings") -> Engine:
    """Create the engine; PostgreSQL gets a bounded QueuePool sized from settings."""
    kwargs: dict[str, Any] = {"pool_pre_ping": True, "echo": cfg.DEBUG}
    if cfg.DATABASE_URL.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
    else:
        kwargs["pool_size"] = cfg.DB_POOL_SIZE
        kwargs["max_overflow"] = cfg.DB_MAX_OVERFLOW
        kwargs["pool_timeout"] = cfg.DB_POOL_TIMEOUT_SEC
    return create_engine(cfg.DATABASE_URL, **kwargs)


engine = build_engine(settings)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """Dependency that yields a DB session and closes it when done."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def check_db_connected(db: Session) -> bool:
    """Run a trivial query to verify the database is reachable."""
    try:
        db.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError:
        return False
