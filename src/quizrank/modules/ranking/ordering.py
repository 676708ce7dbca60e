"""
Ranking computation: total ordering, dense positions and trend labels.

Sort keys, in priority order (all descending):

1. total_points
2. average_accuracy_percent
3. best_streak
4. quizzes_completed
5. last_activity_at (most recent first)

`user_id` breaks any remaining tie so that the result never depends on the
input order.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Iterable, List, Optional, Tuple

from quizrank.modules.ranking.models import StandingEntry, Trend


def sort_key(entry: StandingEntry) -> Tuple[int, float, int, int, float, str]:
    return (
        -entry.total_points,
        -entry.average_accuracy_percent,
        -entry.best_streak,
        -entry.quizzes_completed,
        -entry.last_activity_at.timestamp(),
        entry.user_id,
    )


def derive_trend(position: int, previous_position: Optional[int]) -> Trend:
    if not previous_position:
        return Trend.NEW
    if position < previous_position:
        return Trend.ROSE
    if position > previous_position:
        return Trend.FELL
    return Trend.HELD


def recompute(entries: Iterable[StandingEntry]) -> List[StandingEntry]:
    """
    Sort the full standing set and assign positions 1..N with trends.

    An entry that has never been ranked (position 0) enters as NEW with no
    previous position. Every other entry records its position from the
    prior pass as `previous_position` and is labelled by comparison.
    Does not modify its input.
    """
    ordered = sorted(entries, key=sort_key)
    ranked: List[StandingEntry] = []

    for index, entry in enumerate(ordered):
        position = index + 1
        if entry.position <= 0:
            previous = None
            trend = Trend.NEW
        else:
            previous = entry.position
            trend = derive_trend(position, previous)
        ranked.append(
            replace(entry, position=position, previous_position=previous, trend=trend)
        )

    return ranked
