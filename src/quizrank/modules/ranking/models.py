"""
Ranking data model.

Purpose
-------
Immutable value types shared by every stage of the ranking pipeline:

- ScoreEvent: one completed quiz, append-only history record
- StandingEntry: a user's aggregate competitive record and rank
- QuizSubmission: the inbound event as handed over by the quiz subsystem
- RankingSnapshot: the complete set of ranked views at a point in time
- RankingStats: aggregate counts served by the query facade

Design Notes
------------
- All types are frozen dataclasses; stages derive new values with
  `dataclasses.replace` instead of mutating.
- Snapshots hold tuples and read-only mappings so that observers and
  readers can share the published object safely.
- JSON codecs (`to_dict` / `from_dict`) use snake_case field names and
  ISO-8601 UTC timestamps. Naive timestamps are interpreted as UTC.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple


# ============================================================================
# Helpers
# ============================================================================


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value: Any) -> datetime:
    """
    Parse an ISO-8601 string (a trailing "Z" is accepted) or datetime.

    Raises
    ------
    ValueError:
        If the value is neither a datetime nor a parseable string.
    """
    if isinstance(value, datetime):
        return ensure_utc(value)
    if not isinstance(value, str):
        raise ValueError(f"Expected ISO-8601 timestamp, got {value!r}")
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(text))


def format_timestamp(value: datetime) -> str:
    return ensure_utc(value).isoformat()


# ============================================================================
# Trend
# ============================================================================


class Trend(str, Enum):
    """Direction of a user's rank change between two consecutive computations."""

    ROSE = "rose"
    FELL = "fell"
    HELD = "held"
    NEW = "new"


# ============================================================================
# ScoreEvent
# ============================================================================


@dataclass(frozen=True, slots=True)
class ScoreEvent:
    """One completed quiz. Created once per submission, never mutated."""

    user_id: str
    quiz_id: str
    category: str
    points_earned: int
    correct_count: int
    total_questions: int
    time_spent_seconds: int
    completed_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "quiz_id": self.quiz_id,
            "category": self.category,
            "points_earned": self.points_earned,
            "correct_count": self.correct_count,
            "total_questions": self.total_questions,
            "time_spent_seconds": self.time_spent_seconds,
            "completed_at": format_timestamp(self.completed_at),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ScoreEvent":
        return cls(
            user_id=str(data["user_id"]),
            quiz_id=str(data["quiz_id"]),
            category=str(data.get("category", "")),
            points_earned=int(data.get("points_earned", 0)),
            correct_count=int(data["correct_count"]),
            total_questions=int(data["total_questions"]),
            time_spent_seconds=int(data.get("time_spent_seconds", 0)),
            completed_at=parse_timestamp(data["completed_at"]),
        )


# ============================================================================
# StandingEntry
# ============================================================================


@dataclass(frozen=True, slots=True)
class StandingEntry:
    """
    A user's aggregate standing.

    `position` is 0 until the entry has been through a computation pass;
    afterwards it is the dense 1-based rank in the global ordering.
    `previous_position` is None until a second computation has occurred.
    """

    user_id: str
    display_name: str
    last_activity_at: datetime
    avatar_ref: Optional[str] = None
    total_points: int = 0
    level: int = 1
    quizzes_completed: int = 0
    current_streak: int = 0
    best_streak: int = 0
    average_accuracy_percent: float = 0.0
    total_study_minutes: int = 0
    position: int = 0
    previous_position: Optional[int] = None
    trend: Trend = Trend.NEW

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "display_name": self.display_name,
            "avatar_ref": self.avatar_ref,
            "total_points": self.total_points,
            "level": self.level,
            "quizzes_completed": self.quizzes_completed,
            "current_streak": self.current_streak,
            "best_streak": self.best_streak,
            "average_accuracy_percent": self.average_accuracy_percent,
            "total_study_minutes": self.total_study_minutes,
            "last_activity_at": format_timestamp(self.last_activity_at),
            "position": self.position,
            "previous_position": self.previous_position,
            "trend": self.trend.value,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "StandingEntry":
        """
        Build an entry from its JSON form.

        Raises
        ------
        KeyError, ValueError, TypeError:
            If required fields are missing or malformed.
        """
        previous = data.get("previous_position")
        avatar = data.get("avatar_ref")
        return cls(
            user_id=str(data["user_id"]),
            display_name=str(data.get("display_name") or data["user_id"]),
            avatar_ref=str(avatar) if avatar else None,
            total_points=int(data.get("total_points", 0)),
            level=int(data.get("level", 1)),
            quizzes_completed=int(data.get("quizzes_completed", 0)),
            current_streak=int(data.get("current_streak", 0)),
            best_streak=int(data.get("best_streak", 0)),
            average_accuracy_percent=float(data.get("average_accuracy_percent", 0.0)),
            total_study_minutes=int(data.get("total_study_minutes", 0)),
            last_activity_at=parse_timestamp(data["last_activity_at"]),
            position=int(data.get("position", 0)),
            previous_position=int(previous) if previous else None,
            trend=Trend(data.get("trend", Trend.NEW.value)),
        )


# ============================================================================
# QuizSubmission
# ============================================================================


@dataclass(frozen=True, slots=True)
class QuizSubmission:
    """
    A completed quiz as delivered by the quiz subsystem.

    `total_points` and `level` are the caller's authoritative running values;
    the engine mirrors them instead of accumulating points itself.
    """

    user_id: str
    display_name: str
    quiz_id: str
    category: str
    points_earned: int
    correct_count: int
    total_questions: int
    time_spent_seconds: int
    total_points: int
    level: int = 1
    avatar_ref: Optional[str] = None


# ============================================================================
# RankingSnapshot
# ============================================================================


def _freeze_categories(
    by_category: Optional[Mapping[str, Any]],
) -> Mapping[str, Tuple[StandingEntry, ...]]:
    frozen = {name: tuple(entries) for name, entries in (by_category or {}).items()}
    return MappingProxyType(frozen)


@dataclass(frozen=True, slots=True)
class RankingSnapshot:
    """
    The complete ranked view set, replaced as a whole after each pass.

    `global_ranking` is authoritative and sorted; `weekly` and `monthly`
    are capped recency views of it; `by_category` groups the global order
    by the categories each user has completed quizzes in.
    """

    global_ranking: Tuple[StandingEntry, ...]
    weekly: Tuple[StandingEntry, ...]
    monthly: Tuple[StandingEntry, ...]
    generated_at: datetime
    by_category: Mapping[str, Tuple[StandingEntry, ...]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    _by_user: Mapping[str, StandingEntry] = field(
        init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        object.__setattr__(self, "global_ranking", tuple(self.global_ranking))
        object.__setattr__(self, "weekly", tuple(self.weekly))
        object.__setattr__(self, "monthly", tuple(self.monthly))
        object.__setattr__(self, "generated_at", ensure_utc(self.generated_at))
        object.__setattr__(self, "by_category", _freeze_categories(self.by_category))
        object.__setattr__(
            self,
            "_by_user",
            MappingProxyType({entry.user_id: entry for entry in self.global_ranking}),
        )

    @classmethod
    def empty(cls, generated_at: Optional[datetime] = None) -> "RankingSnapshot":
        return cls(
            global_ranking=(),
            weekly=(),
            monthly=(),
            generated_at=generated_at or datetime.now(timezone.utc),
        )

    @property
    def is_empty(self) -> bool:
        return not self.global_ranking

    def entry_for(self, user_id: str) -> Optional[StandingEntry]:
        return self._by_user.get(user_id)

    def category_members(self) -> Dict[str, frozenset]:
        """User ids grouped by category, as recorded in this snapshot."""
        return {
            name: frozenset(entry.user_id for entry in entries)
            for name, entries in self.by_category.items()
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "global": [entry.to_dict() for entry in self.global_ranking],
            "weekly": [entry.to_dict() for entry in self.weekly],
            "monthly": [entry.to_dict() for entry in self.monthly],
            "by_category": {
                name: [entry.to_dict() for entry in entries]
                for name, entries in self.by_category.items()
            },
            "generated_at": format_timestamp(self.generated_at),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RankingSnapshot":
        """
        Rebuild a snapshot exactly as it was stored.

        Raises
        ------
        KeyError, ValueError, TypeError:
            If the document is malformed.
        """
        def entries(key: str) -> Tuple[StandingEntry, ...]:
            return tuple(StandingEntry.from_dict(item) for item in data.get(key) or ())

        generated_at = data.get("generated_at")
        return cls(
            global_ranking=entries("global"),
            weekly=entries("weekly"),
            monthly=entries("monthly"),
            by_category={
                str(name): tuple(StandingEntry.from_dict(item) for item in items)
                for name, items in (data.get("by_category") or {}).items()
            },
            generated_at=(
                parse_timestamp(generated_at)
                if generated_at
                else datetime.now(timezone.utc)
            ),
        )


# ============================================================================
# RankingStats
# ============================================================================


@dataclass(frozen=True, slots=True)
class RankingStats:
    total_users: int
    active_last_week: int
    active_last_month: int
    categories: int
    last_updated: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_users": self.total_users,
            "active_last_week": self.active_last_week,
            "active_last_month": self.active_last_month,
            "categories": self.categories,
            "last_updated": format_timestamp(self.last_updated),
        }
