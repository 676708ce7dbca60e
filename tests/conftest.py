"""
Pytest Configuration and Fixtures for QuizRank Tests
====================================================

Purpose
-------
Shared fixtures for the QuizRank test suite: a controllable clock, value
factories, in-memory storage, a fake remote source and engine factories.

Responsibilities
----------------
- Testcontainers setup for PostgreSQL and Redis (integration tests)
- Temporary SQLite database for SQL store tests
- Domain value factories (entries, submissions, events)
- Engine construction with injected clock, store and remote

Architecture Notes
------------------
- Unit tests use in-memory stores and fakes (fast, isolated)
- Integration tests use real backends; container fixtures skip the test
  when Docker is not available
"""

from __future__ import annotations

import os

os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("RANKING_CACHE_BACKEND", "memory")

from datetime import datetime
from itertools import count
from typing import AsyncGenerator, Callable, Generator, List, Optional

import pytest
import pytest_asyncio

from quizrank.core.database.service import DatabaseService
from quizrank.core.event.bus import EventBus
from quizrank.core.logging.logger import get_logger
from quizrank.modules.ranking.models import (
    QuizSubmission,
    ScoreEvent,
    StandingEntry,
    Trend,
)
from quizrank.modules.ranking.persistence import RankingPersistence
from quizrank.modules.ranking.service import RankingEngine
from quizrank.modules.ranking.store import MemoryKeyValueStore, RankingStore
from quizrank.modules.shared.exceptions import RemoteUnavailableError

from tests.fakes import FIXED_NOW, FakeClock, FakeRemoteSource

logger = get_logger(__name__)


# ============================================================================
# CLOCK
# ============================================================================


@pytest.fixture
def fixed_now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ============================================================================
# DOMAIN FACTORIES
# ============================================================================


@pytest.fixture
def make_entry() -> Callable[..., StandingEntry]:
    """
    Factory for StandingEntry values.

    Usage:
        entry = make_entry("u1", total_points=100, position=3)
    """

    def _make(user_id: str, **overrides) -> StandingEntry:
        values = {
            "user_id": user_id,
            "display_name": f"User {user_id}",
            "last_activity_at": FIXED_NOW,
            "total_points": 0,
            "quizzes_completed": 1,
            "position": 0,
            "previous_position": None,
            "trend": Trend.NEW,
        }
        values.update(overrides)
        return StandingEntry(**values)

    return _make


@pytest.fixture
def make_submission() -> Callable[..., QuizSubmission]:
    """
    Factory for QuizSubmission values; quiz ids are unique per call.

    Usage:
        submission = make_submission("u1", correct_count=8, total_points=120)
    """
    sequence = count(1)

    def _make(user_id: str, **overrides) -> QuizSubmission:
        values = {
            "user_id": user_id,
            "display_name": f"User {user_id}",
            "quiz_id": f"quiz-{next(sequence)}",
            "category": "Math",
            "points_earned": 10,
            "correct_count": 8,
            "total_questions": 10,
            "time_spent_seconds": 120,
            "total_points": 10,
            "level": 1,
        }
        values.update(overrides)
        return QuizSubmission(**values)

    return _make


@pytest.fixture
def make_event() -> Callable[..., ScoreEvent]:
    def _make(user_id: str, completed_at: datetime = FIXED_NOW, **overrides) -> ScoreEvent:
        values = {
            "user_id": user_id,
            "quiz_id": "quiz-1",
            "category": "Math",
            "points_earned": 10,
            "correct_count": 8,
            "total_questions": 10,
            "time_spent_seconds": 120,
            "completed_at": completed_at,
        }
        values.update(overrides)
        return ScoreEvent(**values)

    return _make


# ============================================================================
# STORAGE AND REMOTE FAKES
# ============================================================================


@pytest.fixture
def memory_kv() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def ranking_store(memory_kv: MemoryKeyValueStore) -> RankingStore:
    return RankingStore(memory_kv, key_prefix="test:rankings")


@pytest.fixture
def fake_remote() -> FakeRemoteSource:
    return FakeRemoteSource()


@pytest.fixture
def unavailable_remote() -> FakeRemoteSource:
    return FakeRemoteSource(error=RemoteUnavailableError("connection refused"))


@pytest.fixture
def mock_event_bus(mocker):
    """EventBus double whose publish() is awaitable and records calls."""
    bus = mocker.Mock(spec=EventBus)
    bus.publish = mocker.AsyncMock(return_value=0)
    return bus


# ============================================================================
# ENGINE
# ============================================================================


@pytest_asyncio.fixture
async def engine_factory(
    ranking_store: RankingStore, clock: FakeClock
) -> AsyncGenerator[Callable[..., "RankingEngine"], None]:
    """
    Async factory for loaded engines; every engine is shut down afterwards.

    Usage:
        engine = await engine_factory(remote=fake_remote)
    """
    engines: List[RankingEngine] = []

    async def _create(
        *,
        store: Optional[RankingStore] = None,
        remote=None,
        event_bus: Optional[EventBus] = None,
        history_retention_days: Optional[int] = None,
    ) -> RankingEngine:
        persistence = RankingPersistence(store or ranking_store, remote, remote_timeout=1.0)
        engine = await RankingEngine.create(
            persistence,
            event_bus=event_bus,
            clock=clock,
            history_retention_days=history_retention_days,
        )
        engines.append(engine)
        return engine

    yield _create

    for engine in engines:
        await engine.shutdown()


@pytest_asyncio.fixture
async def engine(engine_factory) -> RankingEngine:
    return await engine_factory()


# ============================================================================
# SQL DATABASE (SQLite, no external service)
# ============================================================================


@pytest_asyncio.fixture
async def sqlite_database(tmp_path) -> AsyncGenerator[DatabaseService, None]:
    """
    DatabaseService bound to a temporary SQLite file with tables created.
    """
    database = DatabaseService(f"sqlite+aiosqlite:///{tmp_path / 'rankings.db'}")
    await database.initialize()
    await database.create_all()
    yield database
    await database.shutdown()


# ============================================================================
# TESTCONTAINERS FIXTURES (Integration Tests)
# ============================================================================


@pytest.fixture(scope="session")
def postgres_container() -> Generator["PostgresContainer", None, None]:
    """
    Start a PostgreSQL testcontainer; skips when Docker is unavailable.

    Scope: session (container persists across all tests)
    """
    from testcontainers.postgres import PostgresContainer

    container = PostgresContainer(image="postgres:17-alpine", driver="asyncpg")
    try:
        container.start()
    except Exception as exc:
        pytest.skip(f"Docker not available for PostgreSQL container: {exc}")

    logger.info("PostgreSQL testcontainer started: %s", container.get_connection_url())
    yield container
    container.stop()


@pytest.fixture(scope="session")
def redis_container() -> Generator["RedisContainer", None, None]:
    """
    Start a Redis testcontainer; skips when Docker is unavailable.

    Scope: session (container persists across all tests)
    """
    from testcontainers.redis import RedisContainer

    container = RedisContainer(image="redis:7-alpine")
    try:
        container.start()
    except Exception as exc:
        pytest.skip(f"Docker not available for Redis container: {exc}")

    logger.info(
        "Redis testcontainer started: %s:%s",
        container.get_container_host_ip(),
        container.get_exposed_port(6379),
    )
    yield container
    container.stop()
