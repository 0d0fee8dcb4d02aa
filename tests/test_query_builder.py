"""Tests for preference-driven selection criteria."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from models import Recipient
from services.query_builder import (
    Clause,
    ClauseKind,
    ItemField,
    PreferenceValidationError,
    SelectionCriteria,
    build_selection_criteria,
)

WATERMARK = datetime(2026, 10, 18, 7, 0, tzinfo=UTC)


def _recipient(**preferences: tuple[int, ...]) -> Recipient:
    return Recipient(
        recipient_id=1,
        email="reader@example.com",
        last_delivered_at=WATERMARK,
        **preferences,
    )


def test_no_preferences_yields_only_watermark_clause() -> None:
    criteria = build_selection_criteria(_recipient())

    assert criteria.clauses == (
        Clause(kind=ClauseKind.PUBLISHED_SINCE, field=ItemField.PUBLISHED_AT),
    )
    assert criteria.params == (WATERMARK,)
    assert criteria.since == WATERMARK


def test_each_preference_set_adds_one_clause_in_fixed_order() -> None:
    criteria = build_selection_criteria(
        _recipient(
            preferred_skill_ids=(7,),
            preferred_topic_ids=(9, 5),
            preferred_source_ids=(3, 1, 3),
            preferred_size_ids=(2,),
        )
    )

    assert [(c.kind, c.field) for c in criteria.clauses] == [
        (ClauseKind.PUBLISHED_SINCE, ItemField.PUBLISHED_AT),
        (ClauseKind.MEMBER_OF, ItemField.SOURCE_ID),
        (ClauseKind.MEMBER_OF, ItemField.SIZE_CLASS),
        (ClauseKind.OVERLAPS, ItemField.TOPIC_TAG_IDS),
        (ClauseKind.OVERLAPS, ItemField.SKILL_TAG_IDS),
    ]
    assert criteria.params == (WATERMARK, (1, 3), (2,), (5, 9), (7,))
    assert len(criteria.clauses) == len(criteria.params)


def test_empty_sets_are_skipped() -> None:
    criteria = build_selection_criteria(
        _recipient(preferred_source_ids=(), preferred_topic_ids=(4,))
    )

    assert len(criteria.clauses) == 2
    assert criteria.clauses[1].field == ItemField.TOPIC_TAG_IDS


def test_same_preferences_produce_identical_criteria() -> None:
    first = build_selection_criteria(_recipient(preferred_topic_ids=(9, 5), preferred_size_ids=(1,)))
    second = build_selection_criteria(_recipient(preferred_topic_ids=(5, 9), preferred_size_ids=(1,)))

    assert first == second


@pytest.mark.parametrize("bad", [0, -3, "7", 1.5, True])
def test_malformed_identifier_raises(bad: object) -> None:
    with pytest.raises(PreferenceValidationError):
        build_selection_criteria(_recipient(preferred_skill_ids=(1, bad)))  # type: ignore[arg-type]


def test_mismatched_clause_and_param_lengths_are_rejected() -> None:
    with pytest.raises(ValueError):
        SelectionCriteria(
            clauses=(Clause(kind=ClauseKind.PUBLISHED_SINCE, field=ItemField.PUBLISHED_AT),),
            params=(),
        )


def test_matches_requires_tag_overlap_not_equality() -> None:
    criteria = build_selection_criteria(_recipient(preferred_topic_ids=(5, 9)))
    later = WATERMARK + timedelta(hours=1)

    assert criteria.matches({"published_at": later, "topic_tag_ids": [9]})
    assert criteria.matches({"published_at": later, "topic_tag_ids": [1, 5, 12]})
    assert not criteria.matches({"published_at": later, "topic_tag_ids": [2]})
    assert not criteria.matches({"published_at": later, "topic_tag_ids": []})


def test_matches_applies_watermark_and_membership() -> None:
    criteria = build_selection_criteria(_recipient(preferred_source_ids=(3,)))

    assert criteria.matches({"published_at": WATERMARK, "source_id": 3})
    assert not criteria.matches({"published_at": WATERMARK - timedelta(seconds=1), "source_id": 3})
    assert not criteria.matches({"published_at": WATERMARK, "source_id": 4})
