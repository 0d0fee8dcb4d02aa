"""SQLite-backed recipient and content item storage."""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from models import ContentItem, Recipient
from services.query_builder import ClauseKind, ItemField, SelectionCriteria
from services.resilience import ExternalServiceError, RetryPolicy

DEFAULT_THUMBNAIL_URL = "https://www.nerdplanet.app/images/feed-thumbnail.png"
SUMMARY_MAX_CHARS = 50

_BUSY_TIMEOUT_SECONDS = 5.0

_COLUMNS: dict[ItemField, str] = {
    ItemField.PUBLISHED_AT: "published_at",
    ItemField.SOURCE_ID: "source_id",
    ItemField.SIZE_CLASS: "size_class",
    ItemField.TOPIC_TAG_IDS: "topic_tag_ids",
    ItemField.SKILL_TAG_IDS: "skill_tag_ids",
}

_RECIPIENT_COLUMNS = """
    recipient_id,
    email,
    name,
    last_delivered_at,
    preferred_source_ids,
    preferred_size_ids,
    preferred_topic_ids,
    preferred_skill_ids
"""


class StoreError(RuntimeError):
    """Raised when a store operation fails."""


class ContentSelectionError(StoreError):
    """Raised when content items cannot be selected for a recipient."""


class PersistenceError(StoreError):
    """Raised when a recipient watermark cannot be written back."""


class NewsletterStore:
    """SQLite store holding subscribers and published content items.

    Every call opens its own connection, so one instance can be shared by
    concurrently running workers. Writes only ever touch a single recipient
    row; SQLite serializes them and transient lock errors are retried.
    """

    def __init__(self, db_path: Path, *, max_attempts: int = 3) -> None:
        self.db_path = db_path
        self._retry = RetryPolicy(name="sqlite_store", max_attempts=max_attempts)

    def initialize(self) -> None:
        """Initialize SQLite tables if they do not exist."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS recipients (
                    recipient_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    email TEXT NOT NULL UNIQUE,
                    name TEXT,
                    last_delivered_at TEXT NOT NULL,
                    preferred_source_ids TEXT NOT NULL DEFAULT '[]',
                    preferred_size_ids TEXT NOT NULL DEFAULT '[]',
                    preferred_topic_ids TEXT NOT NULL DEFAULT '[]',
                    preferred_skill_ids TEXT NOT NULL DEFAULT '[]'
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS content_items (
                    item_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    title TEXT NOT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    link TEXT NOT NULL,
                    thumbnail TEXT,
                    source_id INTEGER NOT NULL,
                    source_name TEXT NOT NULL,
                    size_class INTEGER,
                    topic_tag_ids TEXT NOT NULL DEFAULT '[]',
                    skill_tag_ids TEXT NOT NULL DEFAULT '[]',
                    published_at TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_content_items_published_at
                ON content_items(published_at)
                """
            )

    # -- recipients ---------------------------------------------------------

    def load_recipients(self) -> list[Recipient]:
        """Return a snapshot of every subscriber."""

        def _operation() -> list[sqlite3.Row]:
            with self._connect() as conn:
                return conn.execute(
                    f"SELECT {_RECIPIENT_COLUMNS} FROM recipients ORDER BY recipient_id ASC"
                ).fetchall()

        try:
            rows = self._retry.execute(_operation)
        except ExternalServiceError as exc:
            raise StoreError(f"Failed to load recipients: {exc}") from exc
        return [_row_to_recipient(row) for row in rows]

    def get_recipient(self, recipient_id: int) -> Recipient | None:
        """Return a single recipient by ID."""
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT {_RECIPIENT_COLUMNS} FROM recipients WHERE recipient_id = ?",
                (recipient_id,),
            ).fetchone()
        if row is None:
            return None
        return _row_to_recipient(row)

    def save_recipient(self, recipient: Recipient) -> None:
        """Persist the recipient's delivery watermark."""

        def _operation() -> int:
            with self._connect() as conn:
                cursor = conn.execute(
                    """
                    UPDATE recipients
                    SET last_delivered_at = ?
                    WHERE recipient_id = ?
                    """,
                    (to_storage_timestamp(recipient.last_delivered_at), recipient.recipient_id),
                )
                return cursor.rowcount

        try:
            updated = self._retry.execute(_operation)
        except ExternalServiceError as exc:
            raise PersistenceError(
                f"Failed to save recipient {recipient.recipient_id}: {exc}"
            ) from exc
        if updated == 0:
            raise PersistenceError(f"Recipient not found: {recipient.recipient_id}")

    def add_recipient(
        self,
        *,
        email: str,
        last_delivered_at: datetime,
        name: str | None = None,
        preferred_source_ids: Sequence[int] = (),
        preferred_size_ids: Sequence[int] = (),
        preferred_topic_ids: Sequence[int] = (),
        preferred_skill_ids: Sequence[int] = (),
    ) -> Recipient:
        """Insert a subscriber and return the stored row."""
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO recipients (
                    email,
                    name,
                    last_delivered_at,
                    preferred_source_ids,
                    preferred_size_ids,
                    preferred_topic_ids,
                    preferred_skill_ids
                )
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    email,
                    name,
                    to_storage_timestamp(last_delivered_at),
                    json.dumps(list(preferred_source_ids)),
                    json.dumps(list(preferred_size_ids)),
                    json.dumps(list(preferred_topic_ids)),
                    json.dumps(list(preferred_skill_ids)),
                ),
            )
            recipient_id = cursor.lastrowid

        recipient = self.get_recipient(int(recipient_id or 0))
        if recipient is None:
            raise StoreError(f"Failed to create recipient: {email}")
        return recipient

    # -- content items ------------------------------------------------------

    def add_item(
        self,
        *,
        title: str,
        link: str,
        source_id: int,
        source_name: str,
        published_at: datetime,
        description: str = "",
        thumbnail: str | None = None,
        size_class: int | None = None,
        topic_tag_ids: Sequence[int] = (),
        skill_tag_ids: Sequence[int] = (),
    ) -> int:
        """Insert a published content item and return its ID."""
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO content_items (
                    title,
                    description,
                    link,
                    thumbnail,
                    source_id,
                    source_name,
                    size_class,
                    topic_tag_ids,
                    skill_tag_ids,
                    published_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    title,
                    description,
                    link,
                    thumbnail,
                    source_id,
                    source_name,
                    size_class,
                    json.dumps(list(topic_tag_ids)),
                    json.dumps(list(skill_tag_ids)),
                    to_storage_timestamp(published_at),
                ),
            )
            return int(cursor.lastrowid or 0)

    def select_items(self, criteria: SelectionCriteria, *, limit: int) -> list[ContentItem]:
        """Return up to ``limit`` matching items, most recently published first."""
        if limit < 1:
            raise ValueError("limit must be >= 1")

        where, params = compile_where(criteria)
        sql = f"""
            SELECT
                title,
                substr(description, 1, {SUMMARY_MAX_CHARS}) AS summary,
                link,
                CASE
                    WHEN thumbnail IS NULL OR thumbnail = '' THEN ?
                    ELSE thumbnail
                END AS thumbnail,
                source_name,
                published_at
            FROM content_items
            WHERE {where}
            ORDER BY published_at DESC, item_id DESC
            LIMIT ?
        """

        def _operation() -> list[sqlite3.Row]:
            with self._connect() as conn:
                return conn.execute(sql, (DEFAULT_THUMBNAIL_URL, *params, limit)).fetchall()

        try:
            rows = self._retry.execute(_operation)
        except ExternalServiceError as exc:
            raise ContentSelectionError(f"Failed to select content items: {exc}") from exc

        return [
            ContentItem(
                title=row["title"],
                summary=row["summary"],
                link=row["link"],
                thumbnail=row["thumbnail"],
                source_name=row["source_name"],
                published_at=_parse_timestamp(row["published_at"]),
            )
            for row in rows
        ]

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path, timeout=_BUSY_TIMEOUT_SECONDS)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except BaseException:
            conn.rollback()
            raise
        finally:
            conn.close()


def compile_where(criteria: SelectionCriteria) -> tuple[str, list[Any]]:
    """Translate tagged clauses into a parameterized SQL conjunction."""
    fragments: list[str] = []
    params: list[Any] = []
    for clause, value in zip(criteria.clauses, criteria.params):
        column = _COLUMNS[clause.field]
        if clause.kind is ClauseKind.PUBLISHED_SINCE:
            fragments.append(f"{column} >= ?")
            params.append(to_storage_timestamp(value))
            continue

        placeholders = ", ".join("?" for _ in value)
        if clause.kind is ClauseKind.MEMBER_OF:
            fragments.append(f"{column} IN ({placeholders})")
        else:
            # overlap: the stored JSON array shares at least one element
            fragments.append(
                f"EXISTS (SELECT 1 FROM json_each({column}) "
                f"WHERE json_each.value IN ({placeholders}))"
            )
        params.extend(value)
    return " AND ".join(fragments), params


def to_storage_timestamp(value: datetime) -> str:
    """Fixed-width UTC ISO string so text comparison matches time order."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def _parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed


def _parse_ids(raw: str | None) -> tuple[int, ...]:
    if not raw:
        return ()
    data = json.loads(raw)
    if not isinstance(data, list):
        raise StoreError(f"Expected JSON array of identifiers, got {raw!r}")
    return tuple(data)


def _row_to_recipient(row: sqlite3.Row) -> Recipient:
    return Recipient(
        recipient_id=int(row["recipient_id"]),
        email=row["email"],
        name=row["name"],
        last_delivered_at=_parse_timestamp(row["last_delivered_at"]),
        preferred_source_ids=_parse_ids(row["preferred_source_ids"]),
        preferred_size_ids=_parse_ids(row["preferred_size_ids"]),
        preferred_topic_ids=_parse_ids(row["preferred_topic_ids"]),
        preferred_skill_ids=_parse_ids(row["preferred_skill_ids"]),
    )
