"""
Ranking Module
==============

Leaderboard engine and its building blocks.

Exports:
- RankingEngine: single-writer engine (submit, observe, query)
- RankingPersistence: remote-first loading with cache fallback
- RankingStore and KeyValueStore backends
- HttpRankingSource: remote listing client
- Value types: QuizSubmission, ScoreEvent, StandingEntry, RankingSnapshot
"""

from quizrank.modules.ranking.models import (
    QuizSubmission,
    RankingSnapshot,
    RankingStats,
    ScoreEvent,
    StandingEntry,
    Trend,
)
from quizrank.modules.ranking.persistence import RankingPersistence
from quizrank.modules.ranking.queries import RankingQueries
from quizrank.modules.ranking.remote import HttpRankingSource, RemoteRankingSource
from quizrank.modules.ranking.service import RankingEngine
from quizrank.modules.ranking.store import (
    DatabaseKeyValueStore,
    KeyValueStore,
    MemoryKeyValueStore,
    RankingStore,
    RedisKeyValueStore,
)

__all__ = [
    # Engine
    "RankingEngine",
    "RankingQueries",
    # Persistence
    "RankingPersistence",
    "RankingStore",
    "KeyValueStore",
    "MemoryKeyValueStore",
    "DatabaseKeyValueStore",
    "RedisKeyValueStore",
    "RemoteRankingSource",
    "HttpRankingSource",
    # Models
    "QuizSubmission",
    "ScoreEvent",
    "StandingEntry",
    "RankingSnapshot",
    "RankingStats",
    "Trend",
]
