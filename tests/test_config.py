"""Tests for config loading and validation."""

from __future__ import annotations

from datetime import time

import pytest

from config import DEFAULT_MAX_WORKERS, DEFAULT_SUBJECT, ConfigError, get_config, reset_config_cache

REQUIRED_ENV = {
    "DATABASE_PATH": "data/newsletter.db",
    "SMTP_HOST": "smtp.example.com",
    "SMTP_PORT": "587",
    "SLACK_WEBHOOK_URL": "https://hooks.slack.com/services/T000/B000/XXXX",
    "TIMEZONE": "Asia/Seoul",
    "RELEASE_TIME": "07:00",
    "PREPARATION_LEAD_MINUTES": "5",
    "FAILURE_LOG_DIR": "data/failures",
    "MAX_EXTERNAL_RETRIES": "3",
    "ENABLE_DRY_RUN": "false",
}


def _apply_required_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key, value in REQUIRED_ENV.items():
        monkeypatch.setenv(key, value)
    for optional in (
        "SMTP_USERNAME",
        "SMTP_PASSWORD",
        "NEWSLETTER_FROM_EMAIL",
        "NEWSLETTER_SUBJECT",
        "MAX_WORKERS",
    ):
        monkeypatch.delenv(optional, raising=False)


def test_get_config_parses_values(monkeypatch: pytest.MonkeyPatch) -> None:
    reset_config_cache()
    _apply_required_env(monkeypatch)
    monkeypatch.setenv("SMTP_USERNAME", "mailer@example.com")
    monkeypatch.setenv("SMTP_PASSWORD", "secret")
    monkeypatch.setenv("MAX_WORKERS", "16")

    config = get_config(load_dotenv_file=False)

    assert config.smtp_port == 587
    assert config.release_time == time(7, 0)
    assert config.preparation_lead_minutes == 5
    assert config.enable_dry_run is False
    assert config.max_workers == 16
    # sender address falls back to the SMTP login
    assert config.newsletter_from_email == "mailer@example.com"
    assert config.newsletter_subject == DEFAULT_SUBJECT


def test_get_config_defaults_max_workers(monkeypatch: pytest.MonkeyPatch) -> None:
    reset_config_cache()
    _apply_required_env(monkeypatch)
    monkeypatch.setenv("NEWSLETTER_FROM_EMAIL", "newsletter@example.com")

    config = get_config(load_dotenv_file=False)

    assert config.max_workers == DEFAULT_MAX_WORKERS
    assert config.smtp_username is None


def test_get_config_missing_required_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    reset_config_cache()
    _apply_required_env(monkeypatch)
    monkeypatch.setenv("NEWSLETTER_FROM_EMAIL", "newsletter@example.com")
    monkeypatch.delenv("SLACK_WEBHOOK_URL", raising=False)

    with pytest.raises(ConfigError):
        get_config(load_dotenv_file=False)


def test_get_config_requires_a_sender_address(monkeypatch: pytest.MonkeyPatch) -> None:
    reset_config_cache()
    _apply_required_env(monkeypatch)

    with pytest.raises(ConfigError, match="NEWSLETTER_FROM_EMAIL"):
        get_config(load_dotenv_file=False)


@pytest.mark.parametrize("raw", ["7", "24:00", "07:60", "seven"])
def test_get_config_rejects_invalid_release_time(monkeypatch: pytest.MonkeyPatch, raw: str) -> None:
    reset_config_cache()
    _apply_required_env(monkeypatch)
    monkeypatch.setenv("NEWSLETTER_FROM_EMAIL", "newsletter@example.com")
    monkeypatch.setenv("RELEASE_TIME", raw)

    with pytest.raises(ConfigError):
        get_config(load_dotenv_file=False)


def test_get_config_rejects_unknown_timezone(monkeypatch: pytest.MonkeyPatch) -> None:
    reset_config_cache()
    _apply_required_env(monkeypatch)
    monkeypatch.setenv("NEWSLETTER_FROM_EMAIL", "newsletter@example.com")
    monkeypatch.setenv("TIMEZONE", "Mars/Olympus_Mons")

    with pytest.raises(ConfigError):
        get_config(load_dotenv_file=False)


def test_get_config_rejects_invalid_bool(monkeypatch: pytest.MonkeyPatch) -> None:
    reset_config_cache()
    _apply_required_env(monkeypatch)
    monkeypatch.setenv("NEWSLETTER_FROM_EMAIL", "newsletter@example.com")
    monkeypatch.setenv("ENABLE_DRY_RUN", "sometimes")

    with pytest.raises(ConfigError):
        get_config(load_dotenv_file=False)
