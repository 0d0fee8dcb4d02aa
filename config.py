"""Centralized configuration loading for the daily dispatcher."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import time
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv


class ConfigError(ValueError):
    """Raised when required configuration is missing or invalid."""


DEFAULT_SUBJECT = "Nerd Planet tech blog newsletter"
DEFAULT_MAX_WORKERS = 256

_TIME_OF_DAY_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})$")


@dataclass(frozen=True)
class AppConfig:
    """Typed application configuration loaded from environment variables."""

    database_path: Path
    smtp_host: str
    smtp_port: int
    smtp_username: str | None
    smtp_password: str | None
    newsletter_from_email: str
    newsletter_subject: str
    slack_webhook_url: str
    timezone: str
    release_time: time
    preparation_lead_minutes: int
    failure_log_dir: Path
    max_external_retries: int
    max_workers: int
    enable_dry_run: bool


_REQUIRED_ENV_VARS = (
    "DATABASE_PATH",
    "SMTP_HOST",
    "SMTP_PORT",
    "SLACK_WEBHOOK_URL",
    "TIMEZONE",
    "RELEASE_TIME",
    "PREPARATION_LEAD_MINUTES",
    "FAILURE_LOG_DIR",
    "MAX_EXTERNAL_RETRIES",
    "ENABLE_DRY_RUN",
)


def _get_required_env(name: str) -> str:
    import os

    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        raise ConfigError(f"Missing required environment variable: {name}")
    return raw.strip()


def _parse_bool(name: str, raw: str) -> bool:
    normalized = raw.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ConfigError(f"Invalid boolean value for {name}: {raw!r}")


def _parse_int(name: str, raw: str, minimum: int | None = None, maximum: int | None = None) -> int:
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigError(f"Invalid integer value for {name}: {raw!r}") from exc

    if minimum is not None and value < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got {value}")
    if maximum is not None and value > maximum:
        raise ConfigError(f"{name} must be <= {maximum}, got {value}")
    return value


def _parse_time_of_day(name: str, raw: str) -> time:
    match = _TIME_OF_DAY_PATTERN.match(raw.strip())
    if match is None:
        raise ConfigError(f"Invalid time of day for {name}: {raw!r}. Expected HH:MM")
    hour = _parse_int(name, match.group(1), minimum=0, maximum=23)
    minute = _parse_int(name, match.group(2), minimum=0, maximum=59)
    return time(hour=hour, minute=minute)


def _validate_timezone(name: str, raw: str) -> str:
    from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

    try:
        ZoneInfo(raw)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ConfigError(f"Unknown time zone for {name}: {raw!r}") from exc
    return raw


def _validate_required_envs() -> None:
    for name in _REQUIRED_ENV_VARS:
        _get_required_env(name)


@lru_cache(maxsize=1)
def get_config(load_dotenv_file: bool = True) -> AppConfig:
    """Load and cache app configuration."""
    if load_dotenv_file:
        load_dotenv()

    _validate_required_envs()

    import os

    smtp_username = os.environ.get("SMTP_USERNAME") or None
    from_email = os.environ.get("NEWSLETTER_FROM_EMAIL") or smtp_username
    if not from_email:
        raise ConfigError("NEWSLETTER_FROM_EMAIL is required when SMTP_USERNAME is not set")

    max_workers_raw = os.environ.get("MAX_WORKERS")
    max_workers = (
        _parse_int("MAX_WORKERS", max_workers_raw, minimum=1)
        if max_workers_raw
        else DEFAULT_MAX_WORKERS
    )

    return AppConfig(
        database_path=Path(_get_required_env("DATABASE_PATH")),
        smtp_host=_get_required_env("SMTP_HOST"),
        smtp_port=_parse_int("SMTP_PORT", _get_required_env("SMTP_PORT"), minimum=1, maximum=65535),
        smtp_username=smtp_username,
        smtp_password=os.environ.get("SMTP_PASSWORD") or None,
        newsletter_from_email=from_email,
        newsletter_subject=os.environ.get("NEWSLETTER_SUBJECT") or DEFAULT_SUBJECT,
        slack_webhook_url=_get_required_env("SLACK_WEBHOOK_URL"),
        timezone=_validate_timezone("TIMEZONE", _get_required_env("TIMEZONE")),
        release_time=_parse_time_of_day("RELEASE_TIME", _get_required_env("RELEASE_TIME")),
        preparation_lead_minutes=_parse_int(
            "PREPARATION_LEAD_MINUTES",
            _get_required_env("PREPARATION_LEAD_MINUTES"),
            minimum=0,
            maximum=720,
        ),
        failure_log_dir=Path(_get_required_env("FAILURE_LOG_DIR")),
        max_external_retries=_parse_int(
            "MAX_EXTERNAL_RETRIES",
            _get_required_env("MAX_EXTERNAL_RETRIES"),
            minimum=1,
        ),
        max_workers=max_workers,
        enable_dry_run=_parse_bool("ENABLE_DRY_RUN", _get_required_env("ENABLE_DRY_RUN")),
    )


def reset_config_cache() -> None:
    """Clear memoized configuration for tests and process reloads."""
    get_config.cache_clear()
