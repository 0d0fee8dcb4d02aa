"""Shared pytest fixtures."""

from __future__ import annotations

from datetime import datetime, time
from pathlib import Path

import pytest

from config import AppConfig
from services.store import NewsletterStore
from tests.clocks import SEOUL, FakeClock


@pytest.fixture
def app_config(tmp_path: Path) -> AppConfig:
    data_dir = tmp_path / "data"
    return AppConfig(
        database_path=data_dir / "newsletter.db",
        smtp_host="localhost",
        smtp_port=2525,
        smtp_username=None,
        smtp_password=None,
        newsletter_from_email="newsletter@example.com",
        newsletter_subject="Nerd Planet tech blog newsletter",
        slack_webhook_url="https://hooks.slack.com/services/T000/B000/XXXX",
        timezone="Asia/Seoul",
        release_time=time(hour=7, minute=0),
        preparation_lead_minutes=5,
        failure_log_dir=data_dir / "failures",
        max_external_retries=3,
        max_workers=8,
        enable_dry_run=True,
    )


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock(datetime(2026, 10, 19, 6, 55, tzinfo=SEOUL))


@pytest.fixture
def store(app_config: AppConfig) -> NewsletterStore:
    newsletter_store = NewsletterStore(app_config.database_path)
    newsletter_store.initialize()
    return newsletter_store
