"""Tests for SMTP sender service."""

from __future__ import annotations

import smtplib
from dataclasses import replace
from email.message import EmailMessage
from typing import Any

import pytest

from config import AppConfig
from services.sender import SmtpSender, TransmissionError


class _FakeSMTP:
    instances: list[_FakeSMTP] = []

    def __init__(self, host: str, port: int, timeout: float) -> None:
        self.host = host
        self.port = port
        self.timeout = timeout
        self.sent: list[EmailMessage] = []
        self.logged_in: tuple[str, str] | None = None
        self.tls = False
        _FakeSMTP.instances.append(self)

    def __enter__(self) -> _FakeSMTP:
        return self

    def __exit__(self, *_: Any) -> None:
        return None

    def starttls(self) -> None:
        self.tls = True

    def login(self, user: str, password: str) -> None:
        self.logged_in = (user, password)

    def send_message(self, message: EmailMessage) -> None:
        self.sent.append(message)


class _RefusingSMTP(_FakeSMTP):
    def send_message(self, message: EmailMessage) -> None:
        raise smtplib.SMTPRecipientsRefused({message["To"]: (550, b"no such user")})


@pytest.fixture(autouse=True)
def _reset_instances() -> None:
    _FakeSMTP.instances.clear()


def test_sender_dry_run_never_opens_connection(app_config: AppConfig) -> None:
    sender = SmtpSender(app_config, smtp_factory=_FakeSMTP)

    result = sender.send(to_email="reader@example.com", subject="Subject", html="<p>hi</p>")

    assert result.dry_run is True
    assert _FakeSMTP.instances == []


def test_sender_live_mode_submits_html_message(app_config: AppConfig) -> None:
    live_config = replace(
        app_config,
        enable_dry_run=False,
        smtp_username="mailer@example.com",
        smtp_password="secret",
    )
    sender = SmtpSender(live_config, smtp_factory=_FakeSMTP)

    result = sender.send(to_email="reader@example.com", subject="Subject", html="<p>hi</p>")

    assert result.dry_run is False
    (server,) = _FakeSMTP.instances
    assert (server.host, server.port) == ("localhost", 2525)
    assert server.tls is True
    assert server.logged_in == ("mailer@example.com", "secret")
    (message,) = server.sent
    assert message["To"] == "reader@example.com"
    assert message["From"] == "newsletter@example.com"
    assert message.get_content_type() == "text/html"


def test_sender_skips_login_without_credentials(app_config: AppConfig) -> None:
    sender = SmtpSender(replace(app_config, enable_dry_run=False), smtp_factory=_FakeSMTP)

    sender.send(to_email="reader@example.com", subject="Subject", html="<p>hi</p>")

    (server,) = _FakeSMTP.instances
    assert server.logged_in is None
    assert server.tls is False


def test_sender_wraps_smtp_failures(app_config: AppConfig) -> None:
    sender = SmtpSender(replace(app_config, enable_dry_run=False), smtp_factory=_RefusingSMTP)

    with pytest.raises(TransmissionError, match="reader@example.com"):
        sender.send(to_email="reader@example.com", subject="Subject", html="<p>hi</p>")
