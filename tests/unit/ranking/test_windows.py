"""
Unit tests for time-window projection and category grouping.
"""

from datetime import timedelta

import pytest

from quizrank.modules.ranking.ordering import recompute
from quizrank.modules.ranking.windows import (
    active_since,
    build_snapshot,
    group_by_category,
    project,
)


@pytest.mark.unit
class TestWindowProjection:
    """Weekly and monthly views are filtered, capped prefixes of global."""

    def test_window_boundaries_are_inclusive(self, make_entry, fixed_now):
        on_edge = make_entry("edge", last_activity_at=fixed_now - timedelta(days=7))
        outside = make_entry(
            "outside", last_activity_at=fixed_now - timedelta(days=7, seconds=1)
        )

        weekly = active_since([on_edge, outside], fixed_now, timedelta(days=7))

        assert [e.user_id for e in weekly] == ["edge"]

    def test_views_preserve_global_order(self, make_entry, fixed_now):
        entries = recompute(
            [
                make_entry("old", total_points=300, last_activity_at=fixed_now - timedelta(days=20)),
                make_entry("mid", total_points=200),
                make_entry("low", total_points=100, last_activity_at=fixed_now - timedelta(days=2)),
                make_entry("gone", total_points=50, last_activity_at=fixed_now - timedelta(days=45)),
            ]
        )

        views = project(entries, fixed_now)

        assert [e.user_id for e in views.weekly] == ["mid", "low"]
        assert [e.user_id for e in views.monthly] == ["old", "mid", "low"]

    def test_window_entries_keep_global_positions(self, make_entry, fixed_now):
        """A window view is a filter; positions are not renumbered."""
        entries = recompute(
            [
                make_entry("old", total_points=300, last_activity_at=fixed_now - timedelta(days=20)),
                make_entry("recent", total_points=100),
            ]
        )

        views = project(entries, fixed_now)

        assert views.weekly[0].user_id == "recent"
        assert views.weekly[0].position == 2

    def test_caps(self, make_entry, fixed_now):
        entries = recompute(
            [make_entry(f"u{i:03d}", total_points=1000 - i) for i in range(120)]
        )

        views = project(entries, fixed_now)

        assert len(views.weekly) == 50
        assert len(views.monthly) == 100
        assert views.weekly == tuple(entries[:50])
        assert views.monthly == tuple(entries[:100])

    def test_projection_is_idempotent(self, make_entry, fixed_now):
        entries = recompute(
            [
                make_entry(f"u{i:03d}", total_points=500 - i, last_activity_at=fixed_now - timedelta(days=i % 40))
                for i in range(80)
            ]
        )
        before = list(entries)

        first = project(entries, fixed_now)
        second = project(entries, fixed_now)

        assert first.weekly == second.weekly
        assert first.monthly == second.monthly
        assert entries == before


@pytest.mark.unit
class TestCategoryGrouping:
    def test_groups_follow_global_order(self, make_entry):
        entries = recompute(
            [
                make_entry("a", total_points=10),
                make_entry("b", total_points=30),
                make_entry("c", total_points=20),
            ]
        )

        grouped = group_by_category(entries, {"Math": {"a", "b"}, "Art": {"c"}})

        assert [e.user_id for e in grouped["Math"]] == ["b", "a"]
        assert [e.user_id for e in grouped["Art"]] == ["c"]

    def test_unranked_members_and_empty_categories_are_dropped(self, make_entry):
        entries = recompute([make_entry("a", total_points=10)])

        grouped = group_by_category(entries, {"Math": {"a", "ghost"}, "Empty": {"ghost"}})

        assert list(grouped) == ["Math"]
        assert [e.user_id for e in grouped["Math"]] == ["a"]

    def test_build_snapshot_assembles_all_views(self, make_entry, fixed_now):
        entries = recompute([make_entry("a", total_points=10)])

        snapshot = build_snapshot(entries, fixed_now, {"Math": {"a"}})

        assert snapshot.global_ranking == tuple(entries)
        assert snapshot.weekly == tuple(entries)
        assert snapshot.monthly == tuple(entries)
        assert set(snapshot.by_category) == {"Math"}
        assert snapshot.generated_at == fixed_now
