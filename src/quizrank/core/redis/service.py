"""
RedisService: async Redis infrastructure for the QuizRank cache backend.

Purpose
-------
Provide an observable Redis abstraction with:
- An async client created from a URL and verified with PING
- Simple KV operations with structured logging
- Idempotent lifecycle management

Responsibilities
----------------
- Initialize and own one redis-py asyncio client (with connection pool)
- Expose get/set/delete/exists
- Log every operation failure with key and latency context

Non-Responsibilities
--------------------
- Ranking semantics (keys and document shapes belong to the ranking store)
- Retries (callers decide how to degrade)

Configuration
-------------
Defaults come from Config and may be overridden per instance:
- REDIS_URL
- REDIS_PASSWORD
- REDIS_SOCKET_TIMEOUT
- REDIS_MAX_CONNECTIONS
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Optional

from redis.asyncio.client import Redis as AsyncRedis  # type: ignore[misc]
from redis.exceptions import RedisError

from quizrank.core.config.config import Config
from quizrank.core.exceptions import RedisConnectionError
from quizrank.core.logging.logger import get_logger

logger = get_logger(__name__)


def _url_scheme(url: str) -> str:
    return url.split("://")[0] if "://" in url else "unknown"


class RedisService:
    """
    Async Redis service.

    Examples
    --------
    >>> redis = RedisService("redis://localhost:6379/0")
    >>> await redis.initialize()
    >>> await redis.set("greeting", "hello")
    True
    >>> await redis.get("greeting")
    'hello'
    """

    def __init__(
        self,
        url: Optional[str] = None,
        *,
        password: Optional[str] = None,
        socket_timeout: Optional[int] = None,
        max_connections: Optional[int] = None,
        client: Optional[AsyncRedis] = None,
    ) -> None:
        self._url = url or Config.REDIS_URL
        self._password = password if password is not None else Config.REDIS_PASSWORD
        self._socket_timeout = socket_timeout or Config.REDIS_SOCKET_TIMEOUT
        self._max_connections = max_connections or Config.REDIS_MAX_CONNECTIONS
        self._client: Optional[AsyncRedis] = client
        self._init_lock = asyncio.Lock()

    # ═══════════════════════════════════════════════════════════════════════
    # LIFECYCLE MANAGEMENT
    # ═══════════════════════════════════════════════════════════════════════

    async def initialize(self) -> None:
        """
        Create the client and verify connectivity.

        Idempotent. Safe to call multiple times.

        Raises
        ------
        RedisConnectionError
            If the connection cannot be established.
        """
        if self._client is not None:
            logger.debug("RedisService already initialized, skipping")
            return

        async with self._init_lock:
            if self._client is not None:
                return

            start_time = time.monotonic()
            client: Optional[AsyncRedis] = None

            try:
                client = AsyncRedis.from_url(
                    self._url,
                    password=self._password or None,
                    socket_timeout=self._socket_timeout,
                    encoding="utf-8",
                    decode_responses=True,
                    max_connections=self._max_connections,
                    health_check_interval=30,
                )

                await client.ping()  # type: ignore[misc]

                self._client = client

                logger.info(
                    "RedisService initialized successfully",
                    extra={
                        "url_scheme": _url_scheme(self._url),
                        "socket_timeout_seconds": self._socket_timeout,
                        "max_connections": self._max_connections,
                        "initialization_time_ms": round(
                            (time.monotonic() - start_time) * 1000, 2
                        ),
                    },
                )

            except (RedisError, OSError) as exc:
                if client is not None:
                    try:
                        await client.aclose()
                    except (RedisError, OSError):
                        pass

                self._client = None

                logger.critical(
                    "Failed to initialize RedisService",
                    extra={
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                        "url_scheme": _url_scheme(self._url),
                    },
                    exc_info=True,
                )
                raise RedisConnectionError("initialize", exc) from exc

    async def shutdown(self) -> None:
        """Close the client. Safe to call even if not initialized."""
        client = self._client
        self._client = None

        if client is None:
            logger.debug("RedisService not initialized, nothing to shutdown")
            return

        try:
            await client.aclose()
            logger.info("RedisService shutdown complete")
        except (RedisError, OSError) as exc:
            logger.error(
                "Error during RedisService shutdown",
                extra={"error": str(exc), "error_type": type(exc).__name__},
                exc_info=True,
            )

    # ═══════════════════════════════════════════════════════════════════════
    # CLIENT ACCESS
    # ═══════════════════════════════════════════════════════════════════════

    @property
    def client(self) -> AsyncRedis:
        """
        Raises
        ------
        RuntimeError
            If the service has not been initialized.
        """
        if self._client is None:
            raise RuntimeError(
                "RedisService is not initialized. Call initialize() during startup."
            )
        return self._client

    # ═══════════════════════════════════════════════════════════════════════
    # KV OPERATIONS
    # ═══════════════════════════════════════════════════════════════════════

    def _log_failure(self, operation: str, key: str, start_time: float, exc: Exception) -> None:
        logger.error(
            f"Redis {operation} operation failed",
            extra={
                "key": key,
                "latency_ms": round((time.monotonic() - start_time) * 1000, 2),
                "error": str(exc),
                "error_type": type(exc).__name__,
            },
            exc_info=True,
        )

    async def get(self, key: str) -> Optional[str]:
        """Get a string value; None when the key does not exist."""
        start_time = time.monotonic()
        try:
            result = await self.client.get(key)
        except (RedisError, OSError) as exc:
            self._log_failure("GET", key, start_time, exc)
            raise
        logger.debug(
            "Redis GET operation",
            extra={"key": key, "found": result is not None},
        )
        return result

    async def set(
        self,
        key: str,
        value: Any,
        ttl_seconds: Optional[int] = None,
    ) -> bool:
        """
        Set a string value. Without `ttl_seconds` the key never expires.
        """
        start_time = time.monotonic()
        try:
            result = await self.client.set(key, value, ex=ttl_seconds)
        except (RedisError, OSError) as exc:
            self._log_failure("SET", key, start_time, exc)
            raise
        logger.debug(
            "Redis SET operation",
            extra={"key": key, "ttl_seconds": ttl_seconds, "success": bool(result)},
        )
        return bool(result)

    async def delete(self, *keys: str) -> int:
        """Delete keys; returns the number of keys removed."""
        if not keys:
            return 0
        start_time = time.monotonic()
        try:
            count = await self.client.delete(*keys)
        except (RedisError, OSError) as exc:
            self._log_failure("DELETE", ",".join(keys), start_time, exc)
            raise
        logger.debug(
            "Redis DELETE operation",
            extra={"keys": list(keys), "deleted_count": int(count)},
        )
        return int(count)

    async def exists(self, key: str) -> bool:
        start_time = time.monotonic()
        try:
            return bool(await self.client.exists(key))
        except (RedisError, OSError) as exc:
            self._log_failure("EXISTS", key, start_time, exc)
            raise
