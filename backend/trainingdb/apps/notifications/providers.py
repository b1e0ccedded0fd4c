from __future__ import annotations

import os
import smtplib
from email.message import EmailMessage
from typing import Tuple


class EmailProvider:
    def send(
        self,
        *,
        email_type: str,
        recipient: str,
        subject: str,
        body: str,
        correlation_id: str | None,
    ) -> None:
        raise NotImplementedError


class NoopProvider(EmailProvider):
    def send(
        self,
        *,
        email_type: str,
        recipient: str,
        subject: str,
        body: str,
        correlation_id: str | None,
    ) -> None:
        return None


class SmtpProvider(EmailProvider):
    def __init__(
        self,
        *,
        host: str,
        port: int,
        username: str | None,
        password: str | None,
        sender: str,
        use_tls: bool,
        timeout: float,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender
        self.use_tls = use_tls
        self.timeout = timeout

    def send(
        self,
        *,
        email_type: str,
        recipient: str,
        subject: str,
        body: str,
        correlation_id: str | None,
    ) -> None:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = recipient
        message["Subject"] = subject
        if correlation_id:
            message["X-Correlation-ID"] = correlation_id
        message["X-Email-Type"] = email_type
        message.set_content(body)

        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
            if self.use_tls:
                smtp.starttls()
            if self.username:
                smtp.login(self.username, self.password or "")
            smtp.send_message(message)


def _smtp_from_env() -> SmtpProvider:
    host = (os.getenv("SMTP_HOST") or "").strip()
    if not host:
        raise ValueError("SMTP_HOST must be set when NOTIFICATIONS_EMAIL_PROVIDER=smtp")
    return SmtpProvider(
        host=host,
        port=int(os.getenv("SMTP_PORT", "587")),
        username=os.getenv("SMTP_USERNAME") or None,
        password=os.getenv("SMTP_PASSWORD") or None,
        sender=os.getenv("SMTP_FROM", "noreply@training-portal.local"),
        use_tls=(os.getenv("SMTP_USE_TLS", "true").strip().lower() in {"1", "true", "yes"}),
        timeout=float(os.getenv("SMTP_TIMEOUT_SEC", "10")),
    )


def get_email_provider() -> Tuple[EmailProvider, bool]:
    provider_name = (
        os.getenv("NOTIFICATIONS_EMAIL_PROVIDER")
        or os.getenv("EMAIL_PROVIDER")
        or ""
    ).strip().lower()
    if not provider_name or provider_name in {"none", "noop", "disabled"}:
        return NoopProvider(), False
    if provider_name == "smtp":
        return _smtp_from_env(), True
    raise ValueError(f"Unsupported email provider: {provider_name}")
