from __future__ import annotations

import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

from bizboost.errors import NotificationError
from bizboost.logging import get_logger

logger = get_logger(__name__)


def redact_email(email: str) -> str:
    """Shorten an address for logging."""
    if "@" not in email:
        return "redacted"
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"


class EmailNotifier:
    """Sends signup verification codes.

    Without an SMTP host the message is logged instead of sent (dev mode).
    """

    def __init__(
        self,
        *,
        smtp_host: Optional[str] = None,
        smtp_port: int = 587,
        smtp_user: Optional[str] = None,
        smtp_password: Optional[str] = None,
        smtp_use_tls: bool = True,
        from_email: Optional[str] = None,
        from_name: str = "Byte-Sized Business Boost",
        timeout: float = 10.0,
    ) -> None:
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.smtp_use_tls = smtp_use_tls
        self.from_email = from_email or smtp_user
        self.from_name = from_name
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings) -> "EmailNotifier":
        return cls(
            smtp_host=settings.smtp_host,
            smtp_port=settings.smtp_port,
            smtp_user=settings.smtp_user,
            smtp_password=settings.smtp_password,
            smtp_use_tls=settings.smtp_use_tls,
            from_email=settings.mail_from,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.smtp_host and self.from_email)

    def send_verification_code(self, to_email: str, username: str, code: str, ttl_minutes: int) -> None:
        """Deliver the one-time code. Raises NotificationError on failure."""
        subject = "Your verification code"
        text_body = (
            f"Hi {username},\n\n"
            f"Your verification code is {code}.\n"
            f"It expires in {ttl_minutes} minutes.\n\n"
            "If you did not try to sign up, you can ignore this email.\n"
        )
        html_body = (
            f"<p>Hi {username},</p>"
            f"<p>Your verification code is <strong>{code}</strong>.</p>"
            f"<p>It expires in {ttl_minutes} minutes.</p>"
            "<p>If you did not try to sign up, you can ignore this email.</p>"
        )
        self._send(to_email, subject, html_body, text_body)

    def _send(self, to_email: str, subject: str, html_body: str, text_body: str) -> None:
        if not self.is_configured:
            logger.info("email_dev_mode", to=redact_email(to_email), subject=subject)
            return

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f"{self.from_name} <{self.from_email}>"
        msg["To"] = to_email
        msg.attach(MIMEText(text_body, "plain"))
        msg.attach(MIMEText(html_body, "html"))

        try:
            if self.smtp_use_tls:
                with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout) as server:
                    server.starttls(context=ssl.create_default_context())
                    self._login_and_send(server, to_email, msg)
            else:
                with smtplib.SMTP_SSL(
                    self.smtp_host, self.smtp_port, timeout=self.timeout,
                    context=ssl.create_default_context(),
                ) as server:
                    self._login_and_send(server, to_email, msg)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("email_send_failed", to=redact_email(to_email), error=str(exc))
            raise NotificationError()

        logger.info("email_sent", to=redact_email(to_email), subject=subject)

    def _login_and_send(self, server: smtplib.SMTP, to_email: str, msg: MIMEMultipart) -> None:
        if self.smtp_user and self.smtp_password:
            server.login(self.smtp_user, self.smtp_password)
        server.sendmail(self.from_email, [to_email], msg.as_string())
