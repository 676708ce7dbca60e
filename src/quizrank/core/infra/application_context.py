"""
Application Context (Kernel) - QuizRank Infrastructure Orchestration
====================================================================

Purpose
-------
Composition root: builds the configured storage backend, the optional
remote ranking source and the RankingEngine, in dependency order, and
tears them down in reverse.

Responsibilities
----------------
- Validate Config
- Build the KeyValueStore for RANKING_CACHE_BACKEND
  (DatabaseService + table creation, RedisService, or in-memory)
- Build HttpRankingSource when RANKING_REMOTE_URL is set
- Create the RankingEngine (which loads the initial snapshot)
- Coordinate graceful shutdown with timing logs

Non-Responsibilities
--------------------
- Ranking rules (RankingEngine and its modules)
- Logging setup (the entry point calls setup_logging first)

Initialization Order:
    1. Config.validate()
    2. KeyValueStore (database / redis / memory)
    3. RankingStore + optional HttpRankingSource -> RankingPersistence
    4. RankingEngine.create()

Shutdown Order (Reverse):
    1. RankingEngine.shutdown() (closes remote source and store)
"""

from __future__ import annotations

import time
from typing import Optional

from quizrank.core.config import CacheBackend, Config
from quizrank.core.database.service import DatabaseService
from quizrank.core.event.bus import EventBus
from quizrank.core.logging.logger import get_logger
from quizrank.core.redis.service import RedisService
from quizrank.modules.ranking.persistence import RankingPersistence
from quizrank.modules.ranking.remote import HttpRankingSource
from quizrank.modules.ranking.service import RankingEngine
from quizrank.modules.ranking.store import (
    DatabaseKeyValueStore,
    KeyValueStore,
    MemoryKeyValueStore,
    RankingStore,
    RedisKeyValueStore,
)

logger = get_logger(__name__)


class ApplicationContext:
    """
    Kernel for infrastructure orchestration and dependency injection.

    Usage:
        context = ApplicationContext()
        await context.initialize()
        print(context.engine.stats())
        await context.shutdown()
    """

    def __init__(self, *, event_bus: Optional[EventBus] = None) -> None:
        self._event_bus = event_bus
        self._kv: Optional[KeyValueStore] = None
        self._persistence: Optional[RankingPersistence] = None
        self._engine: Optional[RankingEngine] = None
        self._initialized: bool = False

        logger.debug("ApplicationContext created")

    # ========================================================================
    # INITIALIZATION
    # ========================================================================

    async def _build_store(self) -> KeyValueStore:
        backend = Config.cache_backend()

        if backend is CacheBackend.DATABASE:
            database = DatabaseService(Config.DATABASE_URL)
            await database.initialize()
            try:
                await database.create_all()
            except Exception:
                await database.shutdown()
                raise
            return DatabaseKeyValueStore(database, owns_database=True)

        if backend is CacheBackend.REDIS:
            redis = RedisService(Config.REDIS_URL)
            await redis.initialize()
            return RedisKeyValueStore(redis, owns_client=True)

        return MemoryKeyValueStore()

    async def initialize(self) -> None:
        """
        Initialize all components in dependency order.

        Raises:
            RuntimeError: If already initialized or initialization fails
        """
        if self._initialized:
            raise RuntimeError("ApplicationContext already initialized")

        logger.info("=" * 70)
        logger.info("APPLICATION CONTEXT INITIALIZATION")
        logger.info("=" * 70)

        start_time = time.perf_counter()

        try:
            Config.validate()
            logger.info("✓ Configuration validated")

            store_start = time.perf_counter()
            self._kv = await self._build_store()
            logger.info(
                "✓ %s cache backend ready (%.2fms)",
                Config.cache_backend().value,
                (time.perf_counter() - store_start) * 1000,
            )

            remote = None
            if Config.remote_enabled():
                remote = HttpRankingSource(
                    Config.RANKING_REMOTE_URL,
                    Config.RANKING_REMOTE_PATH,
                    timeout=Config.RANKING_REMOTE_TIMEOUT_SECONDS,
                )
                logger.info("✓ Remote ranking source configured: %s", remote.url)

            self._persistence = RankingPersistence(
                RankingStore(self._kv, Config.RANKING_CACHE_KEY_PREFIX),
                remote,
                remote_timeout=Config.RANKING_REMOTE_TIMEOUT_SECONDS,
            )

            engine_start = time.perf_counter()
            self._engine = await RankingEngine.create(
                self._persistence,
                event_bus=self._event_bus,
                history_retention_days=Config.RANKING_HISTORY_RETENTION_DAYS,
            )
            logger.info(
                "✓ RankingEngine initialized (%.2fms)",
                (time.perf_counter() - engine_start) * 1000,
            )

            self._initialized = True
            logger.info("=" * 70)
            logger.info("✓ Application context initialized successfully")
            logger.info("  Total time: %.2fms", (time.perf_counter() - start_time) * 1000)
            logger.info("=" * 70)

        except Exception as exc:
            logger.critical(
                "Application context initialization failed",
                extra={
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
                exc_info=True,
            )
            await self._emergency_shutdown()
            raise RuntimeError("Failed to initialize application context") from exc

    # ========================================================================
    # GRACEFUL SHUTDOWN
    # ========================================================================

    async def shutdown(self) -> None:
        if not self._initialized:
            logger.warning("ApplicationContext not initialized, nothing to shut down")
            return

        logger.info("APPLICATION CONTEXT SHUTDOWN")

        if self._engine is not None:
            try:
                await self._engine.shutdown()
                logger.info("✓ RankingEngine shut down")
            except Exception as exc:
                logger.error(
                    "Error shutting down ranking engine",
                    extra={
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                    },
                    exc_info=True,
                )

        self._engine = None
        self._persistence = None
        self._kv = None
        self._initialized = False
        logger.info("✓ Application context shutdown complete")

    async def _emergency_shutdown(self) -> None:
        """
        Best-effort cleanup when initialization fails partway through.
        Errors are logged and not raised.
        """
        logger.warning("Performing emergency shutdown")

        if self._persistence is not None:
            closer = self._persistence.close()
        elif self._kv is not None:
            closer = self._kv.close()
        else:
            return

        try:
            await closer
        except Exception as exc:
            logger.error(
                "Emergency shutdown cleanup failed",
                extra={"error": str(exc), "error_type": type(exc).__name__},
            )
        finally:
            self._engine = None
            self._persistence = None
            self._kv = None

    # ========================================================================
    # PROPERTIES
    # ========================================================================

    @property
    def engine(self) -> RankingEngine:
        if self._engine is None:
            raise RuntimeError("ApplicationContext not initialized")
        return self._engine

    @property
    def is_initialized(self) -> bool:
        return self._initialized
