"""Settings, database session, error taxonomy and logging setup."""

from app.core.config import get_settings, settings
from app.core.database import get_db
from app.core.errors import ServiceError, StorageError
from app.core.logging import configure_logging

__all__ = ["ServiceError", "StorageError", "configure_logging", "get_db", "get_settings", "settings"]
