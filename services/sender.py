"""SMTP submission of rendered newsletters."""

from __future__ import annotations

import smtplib
from collections.abc import Callable
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Any

from config import AppConfig

_SMTP_TIMEOUT_SECONDS = 30.0


class TransmissionError(RuntimeError):
    """Raised when a message could not be handed to the SMTP relay."""


@dataclass(frozen=True)
class SendResult:
    """Outcome of a single submission attempt."""

    to_email: str
    subject: str
    dry_run: bool


class SmtpSender:
    """Submit HTML newsletters over SMTP with dry-run support.

    Exactly one attempt is made per call; the caller decides what a failure
    means for the recipient.
    """

    def __init__(
        self,
        config: AppConfig,
        *,
        smtp_factory: Callable[..., Any] | None = None,
    ) -> None:
        self._config = config
        self._dry_run = config.enable_dry_run
        self._smtp_factory = smtp_factory or smtplib.SMTP

    def build_message(self, *, to_email: str, subject: str, html: str) -> EmailMessage:
        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = self._config.newsletter_from_email
        message["To"] = to_email
        message.set_content(html, subtype="html", charset="utf-8")
        return message

    def send(self, *, to_email: str, subject: str, html: str) -> SendResult:
        """Submit one message, or skip submission in dry-run mode."""
        message = self.build_message(to_email=to_email, subject=subject, html=html)
        if self._dry_run:
            return SendResult(to_email=to_email, subject=subject, dry_run=True)

        try:
            with self._smtp_factory(
                self._config.smtp_host,
                self._config.smtp_port,
                timeout=_SMTP_TIMEOUT_SECONDS,
            ) as server:
                if self._config.smtp_username and self._config.smtp_password:
                    server.starttls()
                    server.login(self._config.smtp_username, self._config.smtp_password)
                server.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            raise TransmissionError(f"SMTP submission to {to_email} failed: {exc}") from exc

        return SendResult(to_email=to_email, subject=subject, dry_run=False)
