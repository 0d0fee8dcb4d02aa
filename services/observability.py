"""Structured logging helpers for dispatch runs."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from models import Recipient

_LOGGER_NAME = "newsletter_dispatch"
_LEVELS = {
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


@dataclass(frozen=True)
class LogContext:
    """Run, and inside a worker the recipient, that an event belongs to."""

    run_id: str | None = None
    recipient_id: int | None = None
    email: str | None = None

    @classmethod
    def for_recipient(cls, run_id: str | None, recipient: Recipient) -> LogContext:
        return cls(run_id=run_id, recipient_id=recipient.recipient_id, email=recipient.email)

    def as_fields(self) -> dict[str, Any]:
        fields: dict[str, Any] = {}
        if self.run_id:
            fields["run_id"] = self.run_id
        if self.recipient_id is not None:
            fields["recipient_id"] = self.recipient_id
        if self.email:
            fields["email"] = self.email
        return fields


class StructuredLogger:
    """One JSON object per line, keyed by event name, so a run can be replayed per recipient."""

    def __init__(self) -> None:
        self._logger = logging.getLogger(_LOGGER_NAME)
        if not self._logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter("%(message)s"))
            self._logger.addHandler(handler)
        self._logger.setLevel(logging.INFO)

    def info(self, event: str, *, context: LogContext | None = None, **fields: Any) -> None:
        self._emit("info", event, context=context, fields=fields)

    def warning(self, event: str, *, context: LogContext | None = None, **fields: Any) -> None:
        self._emit("warning", event, context=context, fields=fields)

    def error(self, event: str, *, context: LogContext | None = None, **fields: Any) -> None:
        self._emit("error", event, context=context, fields=fields)

    def _emit(
        self,
        level: str,
        event: str,
        *,
        context: LogContext | None,
        fields: dict[str, Any],
    ) -> None:
        payload: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": level,
            "event": event,
        }
        if context is not None:
            payload.update(context.as_fields())
        payload.update(fields)
        self._logger.log(_LEVELS[level], json.dumps(payload, sort_keys=True, default=str))


_default_logger: StructuredLogger | None = None


def get_logger() -> StructuredLogger:
    global _default_logger
    if _default_logger is None:
        _default_logger = StructuredLogger()
    return _default_logger
