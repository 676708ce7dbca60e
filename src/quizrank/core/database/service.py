"""
Database Service - SQL backend for the ranking cache

Purpose
-------
Owns one SQLAlchemy AsyncEngine and hands out sessions to the SQL key/value
store. The cache schema is a single table, created on startup with
`create_all()`; there are no migrations.

Architecture Notes
------------------
- `get_transaction()` is the interface for writes: commit on success,
  rollback and re-raise on any exception. Callers never commit themselves.
- `get_session()` is for reads.
- SQLite files and the testing environment use NullPool; server databases
  get a pre-pinged pool sized from Config (DATABASE_POOL_SIZE,
  DATABASE_MAX_OVERFLOW, DATABASE_POOL_RECYCLE).
- Constructor arguments override the corresponding Config values.

Usage Example
-------------
>>> db = DatabaseService("sqlite+aiosqlite:///data/rankings.db")
>>> await db.initialize()
>>> await db.create_all()
>>> async with db.get_transaction() as session:
...     await session.merge(RankingCacheEntry(key="k", value="v"))

Error Handling
--------------
DatabaseInitializationError: missing URL or engine creation failed.
DatabaseNotInitializedError: session requested before initialize() or
after shutdown().
"""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from quizrank.core.config.config import Config
from quizrank.core.database.base import Base
from quizrank.core.logging.logger import get_logger

logger = get_logger(__name__)


class DatabaseInitializationError(RuntimeError):
    """The engine could not be created."""


class DatabaseNotInitializedError(RuntimeError):
    """A session was requested while no engine exists."""


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000.0


class DatabaseService:
    """
    Async engine and session management.

    Public API
    ----------
    - initialize() / shutdown()
    - create_all()
    - get_session() / get_transaction()
    - health_check()
    """

    def __init__(
        self,
        url: Optional[str] = None,
        *,
        echo: Optional[bool] = None,
        pool_size: Optional[int] = None,
        max_overflow: Optional[int] = None,
        pool_recycle: Optional[int] = None,
    ) -> None:
        self._url = url
        self._overrides: Dict[str, Optional[Any]] = {
            "echo": echo,
            "pool_size": pool_size,
            "max_overflow": max_overflow,
            "pool_recycle": pool_recycle,
        }
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None
        self._lock = asyncio.Lock()

    @property
    def is_initialized(self) -> bool:
        return self._engine is not None

    @property
    def url_scheme(self) -> str:
        url = self._url or Config.DATABASE_URL or ""
        return url.split(":", 1)[0] if ":" in url else "unknown"

    def _setting(self, name: str, config_value: Any) -> Any:
        override = self._overrides[name]
        return config_value if override is None else override

    def _engine_kwargs(self, url: str) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {"echo": bool(self._setting("echo", Config.DATABASE_ECHO))}
        if Config.is_testing() or url.startswith("sqlite"):
            kwargs["poolclass"] = NullPool
            return kwargs

        kwargs.update(
            pool_size=int(self._setting("pool_size", Config.DATABASE_POOL_SIZE)),
            max_overflow=int(self._setting("max_overflow", Config.DATABASE_MAX_OVERFLOW)),
            pool_recycle=int(self._setting("pool_recycle", Config.DATABASE_POOL_RECYCLE)),
            pool_pre_ping=True,
        )
        return kwargs

    # ========================================================================
    # Lifecycle
    # ========================================================================

    async def initialize(self) -> None:
        """
        Create the engine and session factory. Idempotent.

        Raises
        ------
        DatabaseInitializationError
            If no URL is configured or the engine cannot be created.
        """
        async with self._lock:
            if self._engine is not None:
                return

            url = self._url or Config.DATABASE_URL
            if not url:
                raise DatabaseInitializationError("DATABASE_URL is not configured")

            try:
                engine_kwargs = self._engine_kwargs(url)
                self._engine = create_async_engine(url, **engine_kwargs)
            except Exception as exc:
                logger.error(
                    "DatabaseService initialization failed",
                    extra={"url_scheme": self.url_scheme, "error_type": type(exc).__name__},
                    exc_info=True,
                )
                raise DatabaseInitializationError(
                    f"Database initialization failed: {exc}"
                ) from exc

            self._session_factory = async_sessionmaker(
                bind=self._engine, class_=AsyncSession, expire_on_commit=False
            )
            logger.info(
                "DatabaseService initialized",
                extra={
                    "url_scheme": self.url_scheme,
                    "null_pool": engine_kwargs.get("poolclass") is NullPool,
                },
            )

    async def create_all(self) -> None:
        """Create every table registered on Base that does not exist yet."""
        engine = self._require_engine()

        # Importing the models registers them on Base.metadata
        import quizrank.database.models  # noqa: F401

        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        logger.info(
            "Database schema ensured",
            extra={"tables": sorted(Base.metadata.tables)},
        )

    async def shutdown(self) -> None:
        """Dispose the engine. Safe to call more than once."""
        async with self._lock:
            engine, self._engine, self._session_factory = self._engine, None, None
            if engine is None:
                return
            await engine.dispose()
            logger.info("DatabaseService shut down")

    async def health_check(self) -> bool:
        """`SELECT 1`; False instead of raising when unreachable."""
        if self._engine is None:
            return False

        start = time.perf_counter()
        try:
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except (OperationalError, DBAPIError) as exc:
            logger.warning(
                "Database health check failed",
                extra={"error_type": type(exc).__name__, "duration_ms": _elapsed_ms(start)},
            )
            return False
        return True

    # ========================================================================
    # Sessions
    # ========================================================================

    def _require_engine(self) -> AsyncEngine:
        if self._engine is None:
            raise DatabaseNotInitializedError(
                "DatabaseService.initialize() must be awaited before use"
            )
        return self._engine

    def _new_session(self) -> AsyncSession:
        self._require_engine()
        assert self._session_factory is not None
        return self._session_factory()

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Session without automatic commit, for reads."""
        async with self._new_session() as session:
            yield session

    @asynccontextmanager
    async def get_transaction(self) -> AsyncGenerator[AsyncSession, None]:
        """Session committed on success and rolled back on any exception."""
        start = time.perf_counter()
        async with self._new_session() as session:
            try:
                yield session
                await session.commit()
            except Exception as exc:
                await session.rollback()
                logger.error(
                    "Database transaction rolled back",
                    extra={"error_type": type(exc).__name__, "duration_ms": _elapsed_ms(start)},
                )
                raise
            logger.debug("Database transaction committed", extra={"duration_ms": _elapsed_ms(start)})
