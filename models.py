"""Core typed models used across the dispatch pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum


class ErrorKind(StrEnum):
    """Stage at which a recipient pipeline failed."""

    SELECTION = "selection"
    RENDER = "render"
    TRANSMISSION = "transmission"
    PERSISTENCE = "persistence"
    INTERNAL = "internal"


@dataclass(frozen=True)
class Recipient:
    """Subscriber row snapshot loaded at run start."""

    recipient_id: int
    email: str
    last_delivered_at: datetime
    name: str | None = None
    preferred_source_ids: tuple[int, ...] = ()
    preferred_size_ids: tuple[int, ...] = ()
    preferred_topic_ids: tuple[int, ...] = ()
    preferred_skill_ids: tuple[int, ...] = ()

    @property
    def display_name(self) -> str:
        """Explicit name, falling back to the email local part."""
        if self.name and self.name.strip():
            return self.name.strip()
        return self.email.split("@", 1)[0]


@dataclass(frozen=True)
class ContentItem:
    """Published article as selected for a message."""

    title: str
    summary: str
    link: str
    thumbnail: str
    source_name: str
    published_at: datetime


@dataclass(frozen=True)
class WorkOutcome:
    """Terminal record of one recipient's processing in one run."""

    recipient_id: int
    name: str
    email: str
    count: int
    error: ErrorKind | None = None
    error_detail: str | None = None
    transmitted_at: datetime | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None


@dataclass(frozen=True)
class RunSummary:
    """Aggregate, human-readable report over all outcomes of one run."""

    lines: tuple[str, ...]
    recipient_count: int
    delivered_items: int
    failure_count: int
    text: str
