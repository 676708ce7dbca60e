"""
Persistence & fallback.

Reads prefer the remote source and fall back to the local cache; writes
always go to the local cache and are best-effort.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Optional

from quizrank.core.logging.logger import get_logger
from quizrank.modules.ranking.models import RankingSnapshot
from quizrank.modules.ranking.remote import RemoteRankingSource
from quizrank.modules.ranking.store import RankingStore
from quizrank.modules.ranking.windows import build_snapshot
from quizrank.modules.shared.exceptions import CacheWriteError, RemoteUnavailableError

logger = get_logger(__name__)


class RankingPersistence:
    """
    Two-tier snapshot loading plus write-through caching.

    Parameters
    ----------
    store:
        Local durable cache.
    remote:
        Optional remote listing source. Without one, `load()` reads the cache.
    remote_timeout:
        Upper bound in seconds for the remote fetch.
    """

    def __init__(
        self,
        store: RankingStore,
        remote: Optional[RemoteRankingSource] = None,
        *,
        remote_timeout: float = 10.0,
    ) -> None:
        self.store = store
        self.remote = remote
        self.remote_timeout = remote_timeout

    async def _fetch_remote(self, now: datetime) -> RankingSnapshot:
        if self.remote is None:
            raise RemoteUnavailableError("no remote source configured")

        try:
            entries = await asyncio.wait_for(
                self.remote.fetch_global(), timeout=self.remote_timeout
            )
        except asyncio.TimeoutError as exc:
            raise RemoteUnavailableError(
                f"timed out after {self.remote_timeout}s", original_error=exc
            ) from exc
        except RemoteUnavailableError:
            raise
        except Exception as exc:
            # Third-party sources may raise transport errors of their own
            raise RemoteUnavailableError(
                str(exc) or type(exc).__name__, original_error=exc
            ) from exc

        # Category memberships are not served remotely; keep the cached ones
        cached = await self.store.read_snapshot()
        members = cached.category_members() if cached is not None else {}

        # Served order is authoritative; no re-ranking on load
        return build_snapshot(entries, now, members)

    async def load(self, now: Optional[datetime] = None) -> RankingSnapshot:
        """
        Remote first, then cache, then an empty snapshot. Never raises.
        """
        now = now or datetime.now(timezone.utc)

        try:
            snapshot = await self._fetch_remote(now)
            logger.info(
                "Rankings loaded from remote source",
                extra={"entries": len(snapshot.global_ranking), "source": "remote"},
            )
            return snapshot
        except RemoteUnavailableError as exc:
            level = logger.warning if self.remote is not None else logger.debug
            level(
                "Remote rankings unavailable; falling back to cache",
                extra={"reason": exc.reason, "error": exc.to_dict()},
            )

        cached = await self.store.read_snapshot()
        if cached is not None:
            logger.info(
                "Rankings loaded from cache",
                extra={"entries": len(cached.global_ranking), "source": "cache"},
            )
            return cached

        logger.info("No ranking data available; starting empty", extra={"source": "empty"})
        return RankingSnapshot.empty(now)

    async def save(self, snapshot: RankingSnapshot) -> bool:
        """
        Write the snapshot to the cache. Failures are logged, not raised.

        Returns
        -------
        bool:
            True if the write succeeded.
        """
        try:
            await self.store.write_snapshot(snapshot)
            return True
        except CacheWriteError as exc:
            logger.error(
                "Failed to cache ranking snapshot",
                extra={"error": exc.to_dict()},
            )
            return False

    async def close(self) -> None:
        if self.remote is not None:
            await self.remote.close()
        await self.store.close()
