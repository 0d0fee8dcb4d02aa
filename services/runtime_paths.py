"""Runtime directory/database bootstrap helpers."""

from __future__ import annotations

from config import AppConfig
from services.store import NewsletterStore


def bootstrap_runtime_paths(config: AppConfig) -> NewsletterStore:
    """Create runtime directories and return an initialized store."""
    config.database_path.parent.mkdir(parents=True, exist_ok=True)
    config.failure_log_dir.mkdir(parents=True, exist_ok=True)

    store = NewsletterStore(config.database_path, max_attempts=config.max_external_retries)
    store.initialize()
    return store
