"""Process-wide logging setup."""

import logging
import time

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def configure_logging(level: str = "INFO") -> None:
    """Install the root handler once; safe to call from the app and from CLI scripts."""
    # asctime is rendered in UTC to match the trailing Z in LOG_DATE_FORMAT.
    logging.Formatter.converter = time.gmtime
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    logging.getLogger().setLevel(level)
    # SQL echo is controlled by DEBUG through the engine, not the root level.
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def redact_email(email: str) -> str:
    """Redact an email address for log records."""
    if "@" not in email:
        return "redacted"
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"
