"""
Unit tests for score event ingestion.

Covers validation, streak rules, accuracy replay and study-minute rounding.
"""

import pytest

from quizrank.modules.ranking.ingestion import (
    average_accuracy,
    build_score_event,
    fold_event,
    is_pass,
    study_minutes,
    validate_submission,
)
from quizrank.modules.ranking.models import Trend
from quizrank.modules.shared.exceptions import InvalidEventError


@pytest.mark.unit
class TestValidation:
    def test_zero_questions_rejected(self, make_submission):
        submission = make_submission("u1", total_questions=0, correct_count=0)

        with pytest.raises(InvalidEventError) as exc_info:
            validate_submission(submission)

        assert exc_info.value.field == "total_questions"
        assert exc_info.value.user_id == "u1"
        assert exc_info.value.error_code == "INVALID_SCORE_EVENT"

    def test_negative_questions_rejected(self, make_submission):
        with pytest.raises(InvalidEventError):
            validate_submission(make_submission("u1", total_questions=-3))

    def test_other_fields_accepted_as_delivered(self, make_submission):
        """Negative points and zero time are not validation failures."""
        validate_submission(
            make_submission("u1", points_earned=-5, time_spent_seconds=0, correct_count=0)
        )


@pytest.mark.unit
class TestDerivations:
    @pytest.mark.parametrize(
        "correct,total,expected",
        [(7, 10, True), (69, 100, False), (10, 10, True), (0, 5, False)],
    )
    def test_pass_threshold(self, correct, total, expected):
        assert is_pass(correct, total) is expected

    @pytest.mark.parametrize(
        "seconds,minutes",
        [(0, 0), (29, 0), (30, 1), (89, 1), (90, 2), (120, 2), (3599, 60)],
    )
    def test_study_minutes_round_half_up(self, seconds, minutes):
        assert study_minutes(seconds) == minutes

    def test_accuracy_is_weighted_by_questions(self, make_event):
        """sum(correct) / sum(total), not a mean of per-quiz percentages."""
        history = [
            make_event("u1", correct_count=10, total_questions=10),
            make_event("u1", correct_count=0, total_questions=30),
        ]

        assert average_accuracy(history) == pytest.approx(25.0)

    def test_accuracy_of_empty_history(self):
        assert average_accuracy([]) == 0.0


@pytest.mark.unit
class TestFoldEvent:
    def test_new_user_entry(self, make_submission, fixed_now):
        """8/10 correct, 120s: streak 1, accuracy 80, 2 minutes, trend NEW."""
        submission = make_submission("u1", total_points=40, level=2, avatar_ref="a.png")
        event = build_score_event(submission, fixed_now)

        entry = fold_event(None, submission, [event], fixed_now)

        assert entry.user_id == "u1"
        assert entry.quizzes_completed == 1
        assert entry.current_streak == 1
        assert entry.best_streak == 1
        assert entry.average_accuracy_percent == pytest.approx(80.0)
        assert entry.total_study_minutes == 2
        assert entry.total_points == 40
        assert entry.level == 2
        assert entry.avatar_ref == "a.png"
        assert entry.trend is Trend.NEW
        assert entry.position == 0
        assert entry.last_activity_at == fixed_now

    def test_new_user_failing_first_quiz(self, make_submission, fixed_now):
        submission = make_submission("u1", correct_count=3)

        entry = fold_event(None, submission, [build_score_event(submission, fixed_now)], fixed_now)

        assert entry.current_streak == 0
        assert entry.best_streak == 0

    def test_fail_resets_streak_but_keeps_best(self, make_entry, make_submission, fixed_now):
        existing = make_entry("u1", current_streak=4, best_streak=4, position=2)
        submission = make_submission("u1", correct_count=6)

        entry = fold_event(existing, submission, [build_score_event(submission, fixed_now)], fixed_now)

        assert entry.current_streak == 0
        assert entry.best_streak == 4

    def test_pass_extends_streak_and_best(self, make_entry, make_submission, fixed_now):
        existing = make_entry("u1", current_streak=4, best_streak=4, position=2)
        submission = make_submission("u1", correct_count=9)

        entry = fold_event(existing, submission, [build_score_event(submission, fixed_now)], fixed_now)

        assert entry.current_streak == 5
        assert entry.best_streak == 5

    def test_existing_user_accumulates(self, make_entry, make_submission, make_event, fixed_now):
        existing = make_entry(
            "u1",
            display_name="Old Name",
            total_points=100,
            quizzes_completed=3,
            total_study_minutes=10,
            position=4,
        )
        submission = make_submission(
            "u1",
            display_name="New Name",
            total_points=150,
            correct_count=5,
            time_spent_seconds=90,
        )
        history = [
            make_event("u1", correct_count=10, total_questions=10),
            build_score_event(submission, fixed_now),
        ]

        entry = fold_event(existing, submission, history, fixed_now)

        assert entry.display_name == "New Name"
        assert entry.total_points == 150
        assert entry.quizzes_completed == 4
        assert entry.total_study_minutes == 12
        assert entry.average_accuracy_percent == pytest.approx(75.0)
        assert entry.previous_position == 4
        assert entry.position == 4
