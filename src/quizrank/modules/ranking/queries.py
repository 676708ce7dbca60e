"""
Query facade: read-only accessors over one immutable snapshot.

No method mutates state or performs I/O. Lookups by user go through the
snapshot's index; aggregate counts are linear scans of the global list.
"""

from __future__ import annotations

from typing import Optional, Tuple

from quizrank.modules.ranking.constants import MONTHLY_WINDOW, WEEKLY_WINDOW
from quizrank.modules.ranking.models import (
    RankingSnapshot,
    RankingStats,
    StandingEntry,
    Trend,
)


def _top(entries: Tuple[StandingEntry, ...], limit: Optional[int]) -> Tuple[StandingEntry, ...]:
    if limit is None:
        return entries
    return entries[: max(limit, 0)]


class RankingQueries:
    def __init__(self, snapshot: RankingSnapshot) -> None:
        self.snapshot = snapshot

    def global_top(self, limit: Optional[int] = None) -> Tuple[StandingEntry, ...]:
        return _top(self.snapshot.global_ranking, limit)

    def weekly_top(self, limit: Optional[int] = None) -> Tuple[StandingEntry, ...]:
        return _top(self.snapshot.weekly, limit)

    def monthly_top(self, limit: Optional[int] = None) -> Tuple[StandingEntry, ...]:
        return _top(self.snapshot.monthly, limit)

    def by_category(self, category: str) -> Tuple[StandingEntry, ...]:
        return self.snapshot.by_category.get(category, ())

    def categories(self) -> Tuple[str, ...]:
        return tuple(sorted(self.snapshot.by_category))

    def entry_of(self, user_id: str) -> Optional[StandingEntry]:
        return self.snapshot.entry_for(user_id)

    def position_of(self, user_id: str) -> int:
        """Global position, or 0 when the user is not ranked."""
        entry = self.snapshot.entry_for(user_id)
        return entry.position if entry is not None else 0

    def previous_position_of(self, user_id: str) -> int:
        """Position before the latest pass, or 0 when unknown."""
        entry = self.snapshot.entry_for(user_id)
        if entry is None or entry.previous_position is None:
            return 0
        return entry.previous_position

    def trend_of(self, user_id: str) -> Trend:
        entry = self.snapshot.entry_for(user_id)
        return entry.trend if entry is not None else Trend.NEW

    def stats(self) -> RankingStats:
        """
        Aggregate counts. Activity counts are relative to the snapshot's
        `generated_at` and scan every ranked user, so they can exceed the
        50 and 100 entry caps of the weekly and monthly windows. The
        windows are display lists; these counts are population figures.
        """
        generated_at = self.snapshot.generated_at
        week_cutoff = generated_at - WEEKLY_WINDOW
        month_cutoff = generated_at - MONTHLY_WINDOW

        active_week = 0
        active_month = 0
        for entry in self.snapshot.global_ranking:
            if entry.last_activity_at >= month_cutoff:
                active_month += 1
                if entry.last_activity_at >= week_cutoff:
                    active_week += 1

        return RankingStats(
            total_users=len(self.snapshot.global_ranking),
            active_last_week=active_week,
            active_last_month=active_month,
            categories=len(self.snapshot.by_category),
            last_updated=generated_at,
        )
