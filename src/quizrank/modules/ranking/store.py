"""
Durable Store Adapter for the ranking engine.

Purpose
-------
Persist ranking snapshots and per-user score-event history as JSON
documents in a generic key/value store, and read them back.

Responsibilities
----------------
- Define the `KeyValueStore` protocol (async get/set/remove/close)
- Provide backends: in-memory, SQL (SQLAlchemy async), Redis
- Encode/decode snapshots and histories (`RankingStore`)
- Maintain the index of users that have stored history

Non-Responsibilities
--------------------
- Choosing between remote and cache (see persistence.py)
- Deciding whether a write failure is fatal (callers decide)

Design Notes
------------
- Backends raise `CacheError` for any I/O failure.
- `RankingStore` reads never raise: a missing, unreadable or corrupt
  document is logged and reported as absent.
- `RankingStore` writes raise `CacheWriteError` so the caller can log it
  against the operation that triggered the write.
"""

from __future__ import annotations

import json
from typing import Dict, Iterable, List, Optional, Protocol, Set, runtime_checkable

from redis.exceptions import RedisError
from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError

from quizrank.core.database.service import DatabaseNotInitializedError, DatabaseService
from quizrank.core.exceptions import CacheError, RedisConnectionError
from quizrank.core.logging.logger import get_logger
from quizrank.core.redis.service import RedisService
from quizrank.database.models.cache_entry import RankingCacheEntry
from quizrank.modules.ranking.constants import (
    HISTORY_INDEX_KEY_TEMPLATE,
    HISTORY_KEY_TEMPLATE,
    SNAPSHOT_KEY_TEMPLATE,
)
from quizrank.modules.ranking.models import RankingSnapshot, ScoreEvent
from quizrank.modules.shared.exceptions import CacheWriteError

logger = get_logger(__name__)


# ============================================================================
# Key/Value backends
# ============================================================================


@runtime_checkable
class KeyValueStore(Protocol):
    """Opaque durable store with string keys and string values."""

    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str) -> None: ...

    async def remove(self, key: str) -> None: ...

    async def close(self) -> None: ...


class MemoryKeyValueStore:
    """Process-local store; contents vanish with the process."""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._data: Dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def remove(self, key: str) -> None:
        self._data.pop(key, None)

    async def close(self) -> None:
        return None

    def keys(self) -> List[str]:
        return sorted(self._data)


class DatabaseKeyValueStore:
    """One `ranking_cache_entries` row per key."""

    def __init__(self, database: DatabaseService, *, owns_database: bool = False) -> None:
        self._db = database
        self._owns_database = owns_database

    async def get(self, key: str) -> Optional[str]:
        try:
            async with self._db.get_session() as session:
                entry = await session.get(RankingCacheEntry, key)
                return entry.value if entry is not None else None
        except (SQLAlchemyError, DatabaseNotInitializedError) as exc:
            raise CacheError("get", key, exc) from exc

    async def set(self, key: str, value: str) -> None:
        try:
            async with self._db.get_transaction() as session:
                entry = await session.get(RankingCacheEntry, key)
                if entry is None:
                    session.add(RankingCacheEntry(key=key, value=value))
                else:
                    entry.value = value
        except (SQLAlchemyError, DatabaseNotInitializedError) as exc:
            raise CacheError("set", key, exc) from exc

    async def remove(self, key: str) -> None:
        try:
            async with self._db.get_transaction() as session:
                await session.execute(
                    delete(RankingCacheEntry).where(RankingCacheEntry.key == key)
                )
        except (SQLAlchemyError, DatabaseNotInitializedError) as exc:
            raise CacheError("remove", key, exc) from exc

    async def close(self) -> None:
        if self._owns_database:
            await self._db.shutdown()


class RedisKeyValueStore:
    """Plain Redis string keys without expiry."""

    def __init__(self, redis: RedisService, *, owns_client: bool = False) -> None:
        self._redis = redis
        self._owns_client = owns_client

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self._redis.get(key)
        except (RedisError, OSError, RuntimeError) as exc:
            raise CacheError("get", key, exc) from exc

    async def set(self, key: str, value: str) -> None:
        try:
            await self._redis.set(key, value)
        except (RedisError, OSError, RuntimeError) as exc:
            raise CacheError("set", key, exc) from exc

    async def remove(self, key: str) -> None:
        try:
            await self._redis.delete(key)
        except (RedisError, OSError, RuntimeError) as exc:
            raise CacheError("remove", key, exc) from exc

    async def close(self) -> None:
        if self._owns_client:
            try:
                await self._redis.shutdown()
            except RedisConnectionError as exc:
                logger.warning("Redis shutdown failed", extra={"error": str(exc)})


# ============================================================================
# RankingStore
# ============================================================================


class RankingStore:
    """
    Snapshot and history persistence on top of a KeyValueStore.

    Keys
    ----
    - `<prefix>:snapshot` -> RankingSnapshot JSON
    - `<prefix>:history:<user_id>` -> list of ScoreEvent JSON
    - `<prefix>:history_index` -> sorted list of user ids with history
    """

    def __init__(self, kv: KeyValueStore, key_prefix: str = "quizrank:rankings") -> None:
        self._kv = kv
        self._prefix = key_prefix

    @property
    def snapshot_key(self) -> str:
        return SNAPSHOT_KEY_TEMPLATE.format(prefix=self._prefix)

    @property
    def history_index_key(self) -> str:
        return HISTORY_INDEX_KEY_TEMPLATE.format(prefix=self._prefix)

    def history_key(self, user_id: str) -> str:
        return HISTORY_KEY_TEMPLATE.format(prefix=self._prefix, user_id=user_id)

    # ------------------------------------------------------------------ #
    # Raw document access
    # ------------------------------------------------------------------ #

    async def _read_document(self, key: str, *, strict: bool = False) -> Optional[object]:
        """
        Missing keys and invalid JSON read as None. A backend failure also
        reads as None unless `strict`, in which case it raises
        CacheWriteError so the caller cannot mistake it for an absent key.
        """
        try:
            raw = await self._kv.get(key)
        except CacheError as exc:
            if strict:
                raise CacheWriteError(key, exc) from exc
            logger.warning(
                "Ranking cache read failed",
                extra={"cache_key": key, "error": str(exc)},
            )
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError as exc:
            logger.warning(
                "Ranking cache document is not valid JSON; ignoring",
                extra={"cache_key": key, "error": str(exc)},
            )
            return None

    async def _write_document(self, key: str, document: object) -> None:
        try:
            await self._kv.set(key, json.dumps(document, ensure_ascii=False))
        except CacheError as exc:
            raise CacheWriteError(key, exc) from exc

    # ------------------------------------------------------------------ #
    # Snapshot
    # ------------------------------------------------------------------ #

    async def read_snapshot(self) -> Optional[RankingSnapshot]:
        document = await self._read_document(self.snapshot_key)
        if document is None:
            return None
        try:
            if not isinstance(document, dict):
                raise TypeError(f"expected object, got {type(document).__name__}")
            return RankingSnapshot.from_dict(document)
        except (KeyError, ValueError, TypeError) as exc:
            logger.warning(
                "Cached ranking snapshot is corrupt; ignoring",
                extra={"cache_key": self.snapshot_key, "error": str(exc)},
            )
            return None

    async def write_snapshot(self, snapshot: RankingSnapshot) -> None:
        """
        Raises
        ------
        CacheWriteError:
            If the backend rejects the write.
        """
        await self._write_document(self.snapshot_key, snapshot.to_dict())
        logger.debug(
            "Ranking snapshot cached",
            extra={"entries": len(snapshot.global_ranking)},
        )

    # ------------------------------------------------------------------ #
    # History
    # ------------------------------------------------------------------ #

    async def read_history_index(self, *, strict: bool = False) -> Set[str]:
        """
        User ids with stored history. With `strict`, an unreadable index
        raises CacheWriteError instead of reading as empty.
        """
        document = await self._read_document(self.history_index_key, strict=strict)
        if not isinstance(document, list):
            return set()
        return {str(user_id) for user_id in document}

    async def read_history(self, user_id: str) -> List[ScoreEvent]:
        key = self.history_key(user_id)
        document = await self._read_document(key)
        if document is None:
            return []
        try:
            if not isinstance(document, list):
                raise TypeError(f"expected list, got {type(document).__name__}")
            return [ScoreEvent.from_dict(item) for item in document]
        except (KeyError, ValueError, TypeError) as exc:
            logger.warning(
                "Cached score history is corrupt; ignoring",
                extra={"cache_key": key, "user_id": user_id, "error": str(exc)},
            )
            return []

    async def write_history(self, user_id: str, events: Iterable[ScoreEvent]) -> None:
        """
        Replace a user's stored history and make sure the user is indexed.

        The index is only rewritten after a successful read, so a backend
        failure never shrinks it.

        Raises
        ------
        CacheWriteError:
            If the backend rejects either write or the index cannot be read.
        """
        await self._write_document(
            self.history_key(user_id), [event.to_dict() for event in events]
        )
        index = await self.read_history_index(strict=True)
        if user_id not in index:
            index.add(user_id)
            await self._write_document(self.history_index_key, sorted(index))

    # ------------------------------------------------------------------ #
    # Maintenance
    # ------------------------------------------------------------------ #

    async def clear(self, known_user_ids: Iterable[str] = ()) -> None:
        """
        Remove the snapshot, the history of every indexed or `known_user_ids`
        user, and the index.

        When the index cannot be read, the known users are still removed
        and the read failure is raised afterwards.

        Raises
        ------
        CacheWriteError:
            If any removal fails or the index cannot be read.
        """
        user_ids = set(known_user_ids)
        index_error: Optional[CacheWriteError] = None
        try:
            user_ids |= await self.read_history_index(strict=True)
        except CacheWriteError as exc:
            index_error = exc

        keys = [self.snapshot_key]
        keys.extend(self.history_key(user_id) for user_id in sorted(user_ids))
        keys.append(self.history_index_key)

        for key in keys:
            try:
                await self._kv.remove(key)
            except CacheError as exc:
                raise CacheWriteError(key, exc) from exc

        if index_error is not None:
            raise index_error

        logger.info("Ranking cache cleared", extra={"keys_removed": len(keys)})

    async def close(self) -> None:
        await self._kv.close()
