"""Selection criteria built from recipient preferences.

A :class:`SelectionCriteria` is a conjunction of tagged clauses with one
parameter per clause. It carries no storage details: the content store
compiles it to SQL, and :meth:`SelectionCriteria.matches` evaluates it
against a plain mapping so the predicate can be checked in isolation.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Any

from models import Recipient


class PreferenceValidationError(ValueError):
    """Raised when a recipient preference set holds an invalid identifier."""


class ClauseKind(StrEnum):
    """Comparison performed by a clause."""

    PUBLISHED_SINCE = "published_since"
    MEMBER_OF = "member_of"
    OVERLAPS = "overlaps"


class ItemField(StrEnum):
    """Content item attributes a clause can constrain."""

    PUBLISHED_AT = "published_at"
    SOURCE_ID = "source_id"
    SIZE_CLASS = "size_class"
    TOPIC_TAG_IDS = "topic_tag_ids"
    SKILL_TAG_IDS = "skill_tag_ids"


@dataclass(frozen=True)
class Clause:
    """Single AND-ed condition; its value lives at the same index in ``params``."""

    kind: ClauseKind
    field: ItemField


@dataclass(frozen=True)
class SelectionCriteria:
    """Conjunction of clauses plus their ordered parameters."""

    clauses: tuple[Clause, ...]
    params: tuple[Any, ...]

    def __post_init__(self) -> None:
        if len(self.clauses) != len(self.params):
            raise ValueError("clauses and params must have equal length")

    @property
    def since(self) -> datetime:
        """Lower bound on publication time (always the first clause)."""
        return self.params[0]

    def matches(self, item: Mapping[str, Any]) -> bool:
        """Evaluate the conjunction against an item's raw field values."""
        for clause, param in zip(self.clauses, self.params):
            value = item.get(clause.field.value)
            if clause.kind is ClauseKind.PUBLISHED_SINCE:
                if value is None or value < param:
                    return False
            elif clause.kind is ClauseKind.MEMBER_OF:
                if value not in param:
                    return False
            elif clause.kind is ClauseKind.OVERLAPS:
                if not set(value or ()) & set(param):
                    return False
        return True


_PREFERENCE_CLAUSES: tuple[tuple[str, ClauseKind, ItemField], ...] = (
    ("preferred_source_ids", ClauseKind.MEMBER_OF, ItemField.SOURCE_ID),
    ("preferred_size_ids", ClauseKind.MEMBER_OF, ItemField.SIZE_CLASS),
    ("preferred_topic_ids", ClauseKind.OVERLAPS, ItemField.TOPIC_TAG_IDS),
    ("preferred_skill_ids", ClauseKind.OVERLAPS, ItemField.SKILL_TAG_IDS),
)


def build_selection_criteria(recipient: Recipient) -> SelectionCriteria:
    """Return the content predicate for ``recipient``'s next message."""
    clauses = [Clause(kind=ClauseKind.PUBLISHED_SINCE, field=ItemField.PUBLISHED_AT)]
    params: list[Any] = [recipient.last_delivered_at]

    for attribute, kind, field in _PREFERENCE_CLAUSES:
        identifiers = getattr(recipient, attribute)
        if not identifiers:
            continue
        clauses.append(Clause(kind=kind, field=field))
        params.append(_normalize_identifiers(attribute, identifiers))

    return SelectionCriteria(clauses=tuple(clauses), params=tuple(params))


def _normalize_identifiers(attribute: str, identifiers: Iterable[Any]) -> tuple[int, ...]:
    normalized: set[int] = set()
    for identifier in identifiers:
        # bool is an int subclass; reject it explicitly
        if isinstance(identifier, bool) or not isinstance(identifier, int):
            raise PreferenceValidationError(
                f"{attribute} contains a non-integer identifier: {identifier!r}"
            )
        if identifier <= 0:
            raise PreferenceValidationError(
                f"{attribute} contains a non-positive identifier: {identifier}"
            )
        normalized.add(identifier)
    return tuple(sorted(normalized))
