"""Out-of-band delivery of verification and reset tokens."""

from __future__ import annotations

import logging
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from enum import Enum
from html import escape
from typing import TYPE_CHECKING, Protocol

from app.core.logging import redact_email

if TYPE_CHECKING:
    from app.core.config import Settings

logger = logging.getLogger(__name__)

SMTP_TIMEOUT_SEC = 30


class NotificationKind(str, Enum):
    EMAIL_VERIFICATION = "email_verification"
    PASSWORD_RESET = "password_reset"


class Notifier(Protocol):
    def send(
        self,
        kind: NotificationKind,
        address: str,
        token: str,
        display_name: str,
    ) -> bool:
        """Deliver token to address. Returns False on failure; never raises."""
        ...


class EmailNotifier:
    """Notifier that sends mail over SMTP.

    Without SMTP_HOST (dev mode) the token is written to the log and the
    send counts as delivered. When an SMTP send fails the token is also
    logged if log fallback is enabled, and the send counts as failed.
    """

    def __init__(
        self,
        *,
        smtp_host: str | None = None,
        smtp_port: int = 587,
        smtp_user: str | None = None,
        smtp_password: str | None = None,
        smtp_use_tls: bool = True,
        from_email: str | None = None,
        from_name: str = "Taskledger Support",
        base_url: str = "http://localhost:8000",
        api_prefix: str = "/api",
        log_fallback: bool = True,
        verification_ttl_hours: int = 24,
        reset_ttl_hours: int = 1,
    ) -> None:
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.smtp_use_tls = smtp_use_tls
        self.from_email = from_email or smtp_user
        self.from_name = from_name
        self.base_url = base_url.rstrip("/")
        self.api_prefix = api_prefix
        self.log_fallback = log_fallback
        self.verification_ttl_hours = verification_ttl_hours
        self.reset_ttl_hours = reset_ttl_hours

    @classmethod
    def from_settings(cls, settings: Settings) -> EmailNotifier:
        password = settings.SMTP_PASSWORD.get_secret_value() if settings.SMTP_PASSWORD else None
        return cls(
            smtp_host=settings.SMTP_HOST,
            smtp_port=settings.SMTP_PORT,
            smtp_user=settings.SMTP_USER,
            smtp_password=password,
            smtp_use_tls=settings.SMTP_USE_TLS,
            from_email=settings.EMAIL_FROM,
            from_name=settings.EMAIL_FROM_NAME,
            base_url=settings.APP_BASE_URL,
            api_prefix=settings.API_PREFIX,
            log_fallback=settings.EMAIL_LOG_FALLBACK,
            verification_ttl_hours=settings.VERIFICATION_TOKEN_TTL_HOURS,
            reset_ttl_hours=settings.RESET_TOKEN_TTL_HOURS,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.smtp_host and self.from_email)

    def send(
        self,
        kind: NotificationKind,
        address: str,
        token: str,
        display_name: str,
    ) -> bool:
        subject, text_body, html_body = self.render(kind, token, display_name)

        if not self.is_configured:
            logger.info(
                "Email not configured; token written to log",
                extra={"kind": kind.value, "to": redact_email(address)},
            )
            self._log_token(kind, address, token, display_name)
            return True

        try:
            self._deliver(address, subject, text_body, html_body)
        except (smtplib.SMTPException, ssl.SSLError, OSError) as e:
            logger.warning(
                "Email delivery failed",
                extra={
                    "kind": kind.value,
                    "to": redact_email(address),
                    "host": self.smtp_host,
                    "error_type": type(e).__name__,
                    "error": str(e)[:200],
                },
            )
            if self.log_fallback:
                self._log_token(kind, address, token, display_name)
            return False

        logger.info("Email sent", extra={"kind": kind.value, "to": redact_email(address)})
        return True

    def _deliver(self, address: str, subject: str, text_body: str, html_body: str) -> None:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f"{self.from_name} <{self.from_email}>"
        msg["To"] = address
        msg.attach(MIMEText(text_body, "plain"))
        msg.attach(MIMEText(html_body, "html"))

        context = ssl.create_default_context()
        if self.smtp_use_tls:
            with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=SMTP_TIMEOUT_SEC) as server:
                server.starttls(context=context)
                if self.smtp_user and self.smtp_password:
                    server.login(self.smtp_user, self.smtp_password)
                server.sendmail(self.from_email, [address], msg.as_string())
        else:
            with smtplib.SMTP_SSL(
                self.smtp_host, self.smtp_port, context=context, timeout=SMTP_TIMEOUT_SEC
            ) as server:
                if self.smtp_user and self.smtp_password:
                    server.login(self.smtp_user, self.smtp_password)
                server.sendmail(self.from_email, [address], msg.as_string())

    def _endpoint(self, kind: NotificationKind) -> str:
        path = "verify-email" if kind is NotificationKind.EMAIL_VERIFICATION else "reset-password"
        return f"{self.base_url}{self.api_prefix}/auth/{path}"

    def _log_token(
        self,
        kind: NotificationKind,
        address: str,
        token: str,
        display_name: str,
    ) -> None:
        logger.warning(
            "Delivery fallback: %s token for %s (%s): %s (POST %s)",
            kind.value,
            redact_email(address),
            display_name,
            token,
            self._endpoint(kind),
        )

    def render(self, kind: NotificationKind, token: str, display_name: str) -> tuple[str, str, str]:
        """Return (subject, text body, html body) for a notification."""
        endpoint = self._endpoint(kind)
        if kind is NotificationKind.EMAIL_VERIFICATION:
            subject = "Email Verification - Taskledger"
            intro = "Thank you for registering! Please verify your email address to activate your account."
            body_json = f'{{"token": "{token}"}}'
            ttl = f"{self.verification_ttl_hours} hours"
            outro = "If you didn't create this account, please ignore this email."
        else:
            subject = "Password Reset Request - Taskledger"
            intro = "You requested a password reset for your Taskledger account."
            body_json = f'{{"resetToken": "{token}", "newPassword": "your-new-password"}}'
            ttl = f"{self.reset_ttl_hours} hour" + ("s" if self.reset_ttl_hours != 1 else "")
            outro = "If you didn't request this password reset, please ignore this email."

        text_body = (
            f"Hello {display_name},\n\n"
            f"{intro}\n\n"
            f"Your token: {token}\n\n"
            f"Send it as JSON in a POST request to {endpoint}:\n"
            f"{body_json}\n\n"
            f"This token will expire in {ttl}.\n"
            f"{outro}\n"
        )
        html_body = f"""
<h2>{subject}</h2>
<p>Hello {escape(display_name)},</p>
<p>{intro}</p>
<p><strong>Your token:</strong></p>
<div style="background-color: #f5f5f5; padding: 15px; font-family: monospace;">{token}</div>
<p>Send it as JSON in a <strong>POST</strong> request to <strong>{endpoint}</strong>:</p>
<pre>{body_json}</pre>
<p><strong>This token will expire in {ttl}.</strong></p>
<p>{outro}</p>
"""
        return subject, text_body, html_body
