"""Tests for Slack webhook run-summary notifications."""

from __future__ import annotations

from types import SimpleNamespace
from typing import Any

import pytest

from services.notifier import NotificationError, SlackWebhookNotifier


class _FakeWebhookClient:
    def __init__(self, status_code: int = 200, body: str = "ok") -> None:
        self.status_code = status_code
        self.body = body
        self.calls: list[dict[str, Any]] = []

    def send(self, **payload: Any) -> SimpleNamespace:
        self.calls.append(payload)
        return SimpleNamespace(status_code=self.status_code, body=self.body)


class _ExplodingWebhookClient:
    def send(self, **_: Any) -> SimpleNamespace:
        raise ConnectionError("network down")


def test_notify_posts_single_attachment() -> None:
    client = _FakeWebhookClient()
    notifier = SlackWebhookNotifier("https://hooks.slack.com/x", client=client)

    notifier.notify("jane received 3 items")

    (call,) = client.calls
    assert call["text"] == "jane received 3 items"
    (attachment,) = call["attachments"]
    assert attachment["color"] == "good"
    assert attachment["text"] == "jane received 3 items"
    assert isinstance(attachment["ts"], int)


def test_notify_raises_on_non_200_reply() -> None:
    notifier = SlackWebhookNotifier(
        "https://hooks.slack.com/x",
        client=_FakeWebhookClient(status_code=404, body="no_service"),
    )

    with pytest.raises(NotificationError, match="404"):
        notifier.notify("summary")


def test_notify_wraps_transport_errors() -> None:
    notifier = SlackWebhookNotifier("https://hooks.slack.com/x", client=_ExplodingWebhookClient())

    with pytest.raises(NotificationError, match="network down"):
        notifier.notify("summary")
