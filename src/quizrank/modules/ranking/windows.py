"""
Time-window projection and category grouping.

Weekly and monthly views are filters over the global order, not separate
rankings: an entry's place in a window is its index in the filtered list.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Dict, Iterable, Mapping, NamedTuple, Optional, Sequence, Tuple

from quizrank.modules.ranking.constants import (
    MONTHLY_LIMIT,
    MONTHLY_WINDOW,
    WEEKLY_LIMIT,
    WEEKLY_WINDOW,
)
from quizrank.modules.ranking.models import RankingSnapshot, StandingEntry, ensure_utc


class WindowViews(NamedTuple):
    weekly: Tuple[StandingEntry, ...]
    monthly: Tuple[StandingEntry, ...]


def active_since(
    entries: Iterable[StandingEntry], now: datetime, window: timedelta
) -> Tuple[StandingEntry, ...]:
    """Entries whose last activity is at or after `now - window`, in input order."""
    cutoff = ensure_utc(now) - window
    return tuple(entry for entry in entries if entry.last_activity_at >= cutoff)


def project(global_ranking: Sequence[StandingEntry], now: datetime) -> WindowViews:
    """Weekly (7 days, top 50) and monthly (30 days, top 100) views."""
    return WindowViews(
        weekly=active_since(global_ranking, now, WEEKLY_WINDOW)[:WEEKLY_LIMIT],
        monthly=active_since(global_ranking, now, MONTHLY_WINDOW)[:MONTHLY_LIMIT],
    )


def group_by_category(
    global_ranking: Sequence[StandingEntry],
    members: Mapping[str, Iterable[str]],
) -> Dict[str, Tuple[StandingEntry, ...]]:
    """
    Group the global order by category membership.

    Users listed under a category but absent from `global_ranking` are
    skipped. Categories without any ranked member are dropped.
    """
    grouped: Dict[str, Tuple[StandingEntry, ...]] = {}
    for category, user_ids in members.items():
        wanted = set(user_ids)
        ranked = tuple(entry for entry in global_ranking if entry.user_id in wanted)
        if ranked:
            grouped[category] = ranked
    return grouped


def build_snapshot(
    global_ranking: Sequence[StandingEntry],
    now: datetime,
    members: Optional[Mapping[str, Iterable[str]]] = None,
) -> RankingSnapshot:
    """Assemble a complete snapshot from an already ordered global list."""
    views = project(global_ranking, now)
    return RankingSnapshot(
        global_ranking=tuple(global_ranking),
        weekly=views.weekly,
        monthly=views.monthly,
        by_category=group_by_category(global_ranking, members or {}),
        generated_at=now,
    )
