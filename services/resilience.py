"""Retry primitives for contended or flaky dependency calls."""

from __future__ import annotations

import sqlite3
from collections.abc import Callable
from typing import TypeVar

from tenacity import (
    RetryError,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

T = TypeVar("T")


class ExternalServiceError(RuntimeError):
    """Raised when a dependency call fails after retries."""


def is_transient_sqlite_error(exc: BaseException) -> bool:
    """SQLite lock contention between concurrent workers is worth retrying."""
    if not isinstance(exc, sqlite3.OperationalError):
        return False
    message = str(exc).lower()
    return "locked" in message or "busy" in message


class RetryPolicy:
    """Bounded retry with exponential jitter for transient failures."""

    def __init__(
        self,
        *,
        name: str,
        max_attempts: int,
        is_retryable: Callable[[BaseException], bool] = is_transient_sqlite_error,
        initial_wait_seconds: float = 0.05,
        max_wait_seconds: float = 2.0,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

        self.name = name
        self.max_attempts = max_attempts
        self._is_retryable = is_retryable
        self._initial_wait_seconds = initial_wait_seconds
        self._max_wait_seconds = max_wait_seconds

    def execute(self, operation: Callable[[], T]) -> T:
        """Run ``operation``, retrying only errors the policy deems transient."""
        retryer = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential_jitter(
                initial=self._initial_wait_seconds,
                max=self._max_wait_seconds,
            ),
            retry=retry_if_exception(self._is_retryable),
            reraise=True,
        )

        try:
            return retryer(operation)
        except RetryError as exc:  # pragma: no cover
            raise ExternalServiceError(
                f"{self.name} failed after {self.max_attempts} attempts: {_root_cause(exc)}"
            ) from exc
        except Exception as exc:
            raise ExternalServiceError(f"{self.name} failed: {exc}") from exc


def _root_cause(exc: BaseException) -> str:
    """Walk the exception chain to find the root cause message."""
    current: BaseException | None = exc
    last_msg = str(exc)
    while current is not None:
        msg = str(current).strip()
        if msg:
            last_msg = msg
        current = current.__cause__ or current.__context__
        if current is exc:
            break
    return last_msg
