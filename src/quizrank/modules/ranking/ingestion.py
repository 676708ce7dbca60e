"""
Score event ingestion.

Folds one completed quiz into the submitting user's standing. Everything
here is pure: the caller supplies the current entry, the user's event
history (including the new event) and the clock reading, and receives new
values back.
"""

from __future__ import annotations

import math
from dataclasses import replace
from datetime import datetime
from typing import Iterable, Optional

from quizrank.modules.ranking.constants import PASS_THRESHOLD, SECONDS_PER_MINUTE
from quizrank.modules.ranking.models import (
    QuizSubmission,
    ScoreEvent,
    StandingEntry,
    Trend,
)
from quizrank.modules.shared.exceptions import InvalidEventError


def validate_submission(submission: QuizSubmission) -> None:
    """
    Reject events that would break accuracy derivation.

    Only `total_questions <= 0` is rejected; point values, correct counts
    and time spent are accepted as delivered.

    Raises
    ------
    InvalidEventError:
        If the submission has no questions.
    """
    if submission.total_questions <= 0:
        raise InvalidEventError(
            "total_questions",
            f"total_questions must be greater than zero, got {submission.total_questions}",
            user_id=submission.user_id,
            quiz_id=submission.quiz_id,
        )


def is_pass(correct_count: int, total_questions: int) -> bool:
    return correct_count / total_questions >= PASS_THRESHOLD


def study_minutes(time_spent_seconds: int) -> int:
    """Seconds to whole minutes, rounding halves up."""
    return int(math.floor(time_spent_seconds / SECONDS_PER_MINUTE + 0.5))


def average_accuracy(history: Iterable[ScoreEvent]) -> float:
    """sum(correct) / sum(total) * 100 over every event; 0.0 when empty."""
    correct = 0
    total = 0
    for event in history:
        correct += event.correct_count
        total += event.total_questions
    if total <= 0:
        return 0.0
    return correct / total * 100


def build_score_event(submission: QuizSubmission, completed_at: datetime) -> ScoreEvent:
    return ScoreEvent(
        user_id=submission.user_id,
        quiz_id=submission.quiz_id,
        category=submission.category,
        points_earned=submission.points_earned,
        correct_count=submission.correct_count,
        total_questions=submission.total_questions,
        time_spent_seconds=submission.time_spent_seconds,
        completed_at=completed_at,
    )


def fold_event(
    existing: Optional[StandingEntry],
    submission: QuizSubmission,
    history: Iterable[ScoreEvent],
    now: datetime,
) -> StandingEntry:
    """
    Apply one submission to a user's standing.

    `history` must already contain the event built from `submission`.
    A first submission creates the entry with trend NEW and position 0;
    later submissions capture the current position as `previous_position`
    before the next computation pass reassigns it.
    """
    passed = is_pass(submission.correct_count, submission.total_questions)
    minutes = study_minutes(submission.time_spent_seconds)
    accuracy = average_accuracy(history)

    if existing is None:
        streak = 1 if passed else 0
        return StandingEntry(
            user_id=submission.user_id,
            display_name=submission.display_name,
            avatar_ref=submission.avatar_ref,
            total_points=submission.total_points,
            level=submission.level,
            quizzes_completed=1,
            current_streak=streak,
            best_streak=streak,
            average_accuracy_percent=accuracy,
            total_study_minutes=minutes,
            last_activity_at=now,
            position=0,
            previous_position=None,
            trend=Trend.NEW,
        )

    if passed:
        current_streak = existing.current_streak + 1
        best_streak = max(existing.best_streak, current_streak)
    else:
        current_streak = 0
        best_streak = existing.best_streak

    return replace(
        existing,
        display_name=submission.display_name or existing.display_name,
        avatar_ref=submission.avatar_ref or existing.avatar_ref,
        total_points=submission.total_points,
        level=submission.level,
        quizzes_completed=existing.quizzes_completed + 1,
        current_streak=current_streak,
        best_streak=best_streak,
        average_accuracy_percent=accuracy,
        total_study_minutes=existing.total_study_minutes + minutes,
        last_activity_at=now,
        previous_position=existing.position or None,
    )
