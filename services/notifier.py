"""Slack incoming-webhook delivery of run summaries."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from slack_sdk.webhook import WebhookClient

AUTHOR_NAME = "plaa"
AUTHOR_SUBNAME = "I live in Nerd Planet."
AUTHOR_LINK = "https://www.nerdplanet.app"


class NotificationError(RuntimeError):
    """Raised when the run summary could not be posted."""


class SlackWebhookNotifier:
    """Post plain-text reports to a Slack incoming webhook."""

    def __init__(self, webhook_url: str, *, client: Any | None = None) -> None:
        self._client = client or WebhookClient(webhook_url)

    def notify(self, text: str) -> None:
        """Post ``text`` as a single attachment; raises on any non-200 reply."""
        attachment = {
            "color": "good",
            "fallback": text,
            "author_name": AUTHOR_NAME,
            "author_subname": AUTHOR_SUBNAME,
            "author_link": AUTHOR_LINK,
            "text": text,
            "footer": AUTHOR_NAME,
            "ts": int(datetime.now(UTC).timestamp()),
        }
        try:
            response = self._client.send(text=text, attachments=[attachment])
        except Exception as exc:  # noqa: BLE001
            raise NotificationError(f"Slack webhook request failed: {exc}") from exc

        status_code = getattr(response, "status_code", None)
        if status_code != 200:
            body = getattr(response, "body", "")
            raise NotificationError(f"Slack webhook returned {status_code}: {body}")
