"""
Unit tests for ranking value types and their JSON forms.
"""

import dataclasses
from datetime import datetime, timezone

import pytest

from quizrank.modules.ranking.models import (
    RankingSnapshot,
    StandingEntry,
    Trend,
    parse_timestamp,
)
from quizrank.modules.ranking.ordering import recompute
from quizrank.modules.ranking.windows import build_snapshot


@pytest.mark.unit
class TestTimestamps:
    def test_trailing_z_is_utc(self):
        parsed = parse_timestamp("2026-03-02T12:00:00Z")

        assert parsed == datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)

    def test_naive_is_treated_as_utc(self):
        parsed = parse_timestamp("2026-03-02T12:00:00")

        assert parsed.tzinfo is not None
        assert parsed.utcoffset().total_seconds() == 0

    def test_rejects_non_string(self):
        with pytest.raises(ValueError):
            parse_timestamp(12345)


@pytest.mark.unit
class TestStandingEntry:
    def test_from_dict_defaults(self):
        """Only user_id and last_activity_at are required."""
        entry = StandingEntry.from_dict(
            {"user_id": "u1", "last_activity_at": "2026-03-01T00:00:00+00:00"}
        )

        assert entry.display_name == "u1"
        assert entry.position == 0
        assert entry.previous_position is None
        assert entry.trend is Trend.NEW

    def test_entries_are_immutable(self, make_entry):
        entry = make_entry("u1")

        with pytest.raises(dataclasses.FrozenInstanceError):
            entry.total_points = 10  # type: ignore[misc]

    def test_json_form_uses_snake_case(self, make_entry):
        document = make_entry("u1", trend=Trend.ROSE).to_dict()

        assert document["trend"] == "rose"
        assert "average_accuracy_percent" in document
        assert "last_activity_at" in document


@pytest.mark.unit
class TestRankingSnapshot:
    def test_empty(self, fixed_now):
        snapshot = RankingSnapshot.empty(fixed_now)

        assert snapshot.is_empty
        assert snapshot.entry_for("anyone") is None
        assert dict(snapshot.by_category) == {}

    def test_category_view_is_read_only(self, make_entry, fixed_now):
        snapshot = build_snapshot(recompute([make_entry("a")]), fixed_now, {"Math": {"a"}})

        with pytest.raises(TypeError):
            snapshot.by_category["Art"] = ()  # type: ignore[index]

    def test_document_restores_every_view(self, make_entry, fixed_now):
        """A stored snapshot is restored exactly, including categories."""
        entries = recompute(
            [make_entry("a", total_points=20), make_entry("b", total_points=10)]
        )
        snapshot = build_snapshot(entries, fixed_now, {"Math": {"b"}})

        restored = RankingSnapshot.from_dict(snapshot.to_dict())

        assert restored == snapshot
        assert restored.entry_for("b").position == 2
        assert restored.category_members() == {"Math": frozenset({"b"})}

    def test_document_keys(self, fixed_now):
        document = RankingSnapshot.empty(fixed_now).to_dict()

        assert set(document) == {"global", "weekly", "monthly", "by_category", "generated_at"}
