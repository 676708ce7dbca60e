"""
RankingEngine: the single writer of the ranking snapshot.

Purpose
-------
Accept quiz-completion events, fold them into per-user standings, recompute
the global order and derived views, persist the result and notify
observers. Serve reads from the latest in-memory snapshot.

Responsibilities
----------------
- Lazy initialization from `RankingPersistence.load()`
- The submit pipeline: validate -> history -> fold -> recompute ->
  project -> swap -> persist -> notify
- Observer registration on the engine's EventBus
- Administrative maintenance (`reset`, `prune_history`)
- Read delegates over `RankingQueries`

Non-Responsibilities
--------------------
- Choosing storage backends or the remote source (ApplicationContext)
- Ordering and window rules (ordering.py, windows.py)

Design Notes
------------
- One `asyncio.Lock` guards every mutation. The locked section runs in a
  shielded task: once accepted, a submission completes even if the caller
  is cancelled.
- Only `InvalidEventError` reaches callers of `submit`. Persistence and
  observer failures are logged and swallowed.
- The published snapshot is immutable; observers receive the same object
  readers get from `snapshot`.
- Observers run inside the locked section, so an observer that awaits
  `submit` on the same engine deadlocks. Schedule it as a task instead.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Set, Tuple, Union

from quizrank.core.event.bus import EventBus
from quizrank.core.event.types import CallbackType, EventListener
from quizrank.core.logging.logger import LogContext, get_logger
from quizrank.modules.ranking.constants import (
    DEFAULT_HISTORY_RETENTION_DAYS,
    RANKING_CHANGED_EVENT,
)
from quizrank.modules.ranking.ingestion import (
    build_score_event,
    fold_event,
    validate_submission,
)
from quizrank.modules.ranking.models import (
    QuizSubmission,
    RankingSnapshot,
    RankingStats,
    ScoreEvent,
    StandingEntry,
    Trend,
    ensure_utc,
)
from quizrank.modules.ranking.ordering import recompute
from quizrank.modules.ranking.persistence import RankingPersistence
from quizrank.modules.ranking.queries import RankingQueries
from quizrank.modules.ranking.windows import build_snapshot
from quizrank.modules.shared.base_service import BaseService
from quizrank.modules.shared.exceptions import CacheWriteError, ObserverError

logger = get_logger(__name__)

Clock = Callable[[], datetime]


def _utc_clock() -> datetime:
    return datetime.now(timezone.utc)


class RankingEngine(BaseService):
    """
    Leaderboard engine.

    Build it with `await RankingEngine.create(persistence)`; a directly
    constructed engine loads its snapshot on the first submission or on
    `await engine.load()`.
    """

    def __init__(
        self,
        persistence: RankingPersistence,
        *,
        event_bus: Optional[EventBus] = None,
        clock: Optional[Clock] = None,
        history_retention_days: Optional[int] = None,
    ) -> None:
        super().__init__(
            event_bus or EventBus(error_handler=self._on_observer_error), logger
        )
        self._persistence = persistence
        self._clock: Clock = clock or _utc_clock
        self._retention_days = (
            history_retention_days
            if history_retention_days is not None
            else DEFAULT_HISTORY_RETENTION_DAYS
        )

        self._lock = asyncio.Lock()
        self._snapshot = RankingSnapshot.empty(self._now())
        self._members: Dict[str, Set[str]] = {}
        self._history: Dict[str, List[ScoreEvent]] = {}
        self._loaded = False
        self._closed = False

    @classmethod
    async def create(
        cls,
        persistence: RankingPersistence,
        *,
        event_bus: Optional[EventBus] = None,
        clock: Optional[Clock] = None,
        history_retention_days: Optional[int] = None,
    ) -> "RankingEngine":
        engine = cls(
            persistence,
            event_bus=event_bus,
            clock=clock,
            history_retention_days=history_retention_days,
        )
        await engine.load()
        return engine

    # ------------------------------------------------------------------ #
    # State
    # ------------------------------------------------------------------ #

    @property
    def snapshot(self) -> RankingSnapshot:
        return self._snapshot

    @property
    def queries(self) -> RankingQueries:
        return RankingQueries(self._snapshot)

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    @property
    def is_closed(self) -> bool:
        return self._closed

    def _now(self) -> datetime:
        return ensure_utc(self._clock())

    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError("RankingEngine has been shut down")

    async def load(self) -> RankingSnapshot:
        """Load the initial snapshot once; later calls return the current one."""
        async with self._lock:
            await self._load_locked()
        return self._snapshot

    async def _load_locked(self) -> None:
        if self._loaded:
            return
        snapshot = await self._persistence.load(self._now())
        self._snapshot = snapshot
        self._members = {
            category: set(user_ids)
            for category, user_ids in snapshot.category_members().items()
        }
        self._loaded = True
        self.log.info(
            "Ranking snapshot initialized",
            extra={
                "entries": len(snapshot.global_ranking),
                "categories": len(snapshot.by_category),
            },
        )

    def _known_user_ids(self) -> Set[str]:
        """Users with cached history or a standing in the current snapshot."""
        return set(self._history) | {
            entry.user_id for entry in self._snapshot.global_ranking
        }

    async def _history_for(self, user_id: str) -> List[ScoreEvent]:
        cached = self._history.get(user_id)
        if cached is None:
            cached = await self._persistence.store.read_history(user_id)
            self._history[user_id] = cached
        return cached

    # ------------------------------------------------------------------ #
    # Submission
    # ------------------------------------------------------------------ #

    async def submit(
        self, submission: Optional[QuizSubmission] = None, **fields: Any
    ) -> RankingSnapshot:
        """
        Ingest one completed quiz and return the resulting snapshot.

        Accepts either a `QuizSubmission` or its fields as keyword
        arguments.

        Raises
        ------
        InvalidEventError:
            If `total_questions <= 0`. Nothing is mutated and no observer
            is notified.
        RuntimeError:
            If the engine has been shut down.
        """
        self._ensure_open()
        if submission is None:
            submission = QuizSubmission(**fields)
        elif fields:
            raise TypeError("Pass either a QuizSubmission or keyword fields, not both")

        validate_submission(submission)

        return await asyncio.shield(self._apply(submission))

    async def _apply(self, submission: QuizSubmission) -> RankingSnapshot:
        async with LogContext(
            user_id=submission.user_id,
            quiz_id=submission.quiz_id,
            component="ranking",
            operation="submit",
        ):
            async with self._lock:
                self._ensure_open()
                await self._load_locked()
                snapshot, history = await self._ingest(submission)
                await self._persist(submission.user_id, snapshot, history)
                await self.emit_event(RANKING_CHANGED_EVENT, snapshot)
            return snapshot

    async def _ingest(
        self, submission: QuizSubmission
    ) -> Tuple[RankingSnapshot, List[ScoreEvent]]:
        now = self._now()
        user_id = submission.user_id

        event = build_score_event(submission, now)
        history = [*await self._history_for(user_id), event]

        current = self._snapshot
        updated = fold_event(current.entry_for(user_id), submission, history, now)
        others = [entry for entry in current.global_ranking if entry.user_id != user_id]
        ranked = recompute([*others, updated])

        self._members.setdefault(submission.category, set()).add(user_id)
        snapshot = build_snapshot(ranked, now, self._members)

        self._history[user_id] = history
        self._snapshot = snapshot

        entry = snapshot.entry_for(user_id)
        self.log_operation(
            "submit",
            category=submission.category,
            points_earned=submission.points_earned,
            position=entry.position if entry else 0,
            trend=entry.trend.value if entry else Trend.NEW.value,
            total_users=len(ranked),
        )
        return snapshot, history

    async def _persist(
        self, user_id: str, snapshot: RankingSnapshot, history: List[ScoreEvent]
    ) -> None:
        await self._persistence.save(snapshot)
        try:
            await self._persistence.store.write_history(user_id, history)
        except CacheWriteError as exc:
            self.log_error("write_history", exc)

    # ------------------------------------------------------------------ #
    # Observers
    # ------------------------------------------------------------------ #

    def subscribe(
        self,
        observer: Callable[[RankingSnapshot], Any],
        *,
        identifier: Optional[str] = None,
    ) -> str:
        """Register an observer; returns its listener identifier."""
        return self._events.subscribe(
            RANKING_CHANGED_EVENT, observer, identifier=identifier
        )

    def unsubscribe(self, observer_or_id: Union[CallbackType, str]) -> bool:
        return self._events.unsubscribe(RANKING_CHANGED_EVENT, observer_or_id)

    def observer_count(self) -> int:
        return self._events.get_listener_count(RANKING_CHANGED_EVENT)

    def _on_observer_error(
        self, event_name: str, listener: EventListener, exc: Exception
    ) -> None:
        error = ObserverError(listener.identifier, event_name, exc)
        self.log.error(
            "Ranking observer failed",
            extra={"error": error.to_dict()},
            exc_info=(type(exc), exc, exc.__traceback__),
        )

    # ------------------------------------------------------------------ #
    # Maintenance
    # ------------------------------------------------------------------ #

    async def reset(self) -> RankingSnapshot:
        """
        Wipe every standing, history and category membership, clear the
        store and notify observers with the empty snapshot.

        Raises
        ------
        CacheWriteError:
            If the store could not be cleared. In-memory state is already
            empty at that point.
        """
        self._ensure_open()
        async with self._lock:
            await self._load_locked()
            known_users = self._known_user_ids()
            empty = RankingSnapshot.empty(self._now())
            self._snapshot = empty
            self._members = {}
            self._history = {}
            self._loaded = True
            self.log.warning("Ranking data reset", extra={"operation": "reset"})
            try:
                await self._persistence.store.clear(known_users)
            finally:
                await self.emit_event(RANKING_CHANGED_EVENT, empty)
        return empty

    async def prune_history(self, keep_days: Optional[int] = None) -> int:
        """
        Drop stored score events older than `keep_days` for every user with
        history. Standings are left untouched.

        Returns
        -------
        int:
            Number of events removed.
        """
        self._ensure_open()
        days = keep_days if keep_days is not None else self._retention_days
        if days < 0:
            raise ValueError(f"keep_days must be non-negative, got {days}")

        async with self._lock:
            cutoff = self._now() - timedelta(days=days)
            store = self._persistence.store
            user_ids = await store.read_history_index() | self._known_user_ids()

            removed = 0
            for user_id in sorted(user_ids):
                events = await self._history_for(user_id)
                kept = [event for event in events if event.completed_at >= cutoff]
                if len(kept) == len(events):
                    continue
                removed += len(events) - len(kept)
                self._history[user_id] = kept
                try:
                    await store.write_history(user_id, kept)
                except CacheWriteError as exc:
                    self.log_error("prune_history", exc, user_id=user_id)

        self.log_operation("prune_history", keep_days=days, events_removed=removed)
        return removed

    async def shutdown(self) -> None:
        """Close the remote source and the store and drop all observers."""
        if self._closed:
            return
        self._closed = True
        async with self._lock:
            self._events.clear()
            await self._persistence.close()
        self.log.info("RankingEngine shut down")

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #

    def global_top(self, limit: Optional[int] = None) -> Tuple[StandingEntry, ...]:
        return self.queries.global_top(limit)

    def weekly_top(self, limit: Optional[int] = None) -> Tuple[StandingEntry, ...]:
        return self.queries.weekly_top(limit)

    def monthly_top(self, limit: Optional[int] = None) -> Tuple[StandingEntry, ...]:
        return self.queries.monthly_top(limit)

    def by_category(self, category: str) -> Tuple[StandingEntry, ...]:
        return self.queries.by_category(category)

    def categories(self) -> Tuple[str, ...]:
        return self.queries.categories()

    def position_of(self, user_id: str) -> int:
        return self.queries.position_of(user_id)

    def entry_of(self, user_id: str) -> Optional[StandingEntry]:
        return self.queries.entry_of(user_id)

    def previous_position_of(self, user_id: str) -> int:
        return self.queries.previous_position_of(user_id)

    def trend_of(self, user_id: str) -> Trend:
        return self.queries.trend_of(user_id)

    def stats(self) -> RankingStats:
        return self.queries.stats()
