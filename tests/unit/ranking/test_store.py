"""
Unit tests for RankingStore over the in-memory key/value backend.
"""

from datetime import timedelta

import pytest

from quizrank.core.exceptions import CacheError
from quizrank.modules.ranking.ordering import recompute
from quizrank.modules.ranking.store import MemoryKeyValueStore, RankingStore
from quizrank.modules.ranking.windows import build_snapshot
from quizrank.modules.shared.exceptions import CacheWriteError

from tests.fakes import FlakyKeyValueStore


class BrokenKeyValueStore(MemoryKeyValueStore):
    """Backend whose reads and writes always fail."""

    async def get(self, key):
        raise CacheError("get", key, ConnectionError("down"))

    async def set(self, key, value):
        raise CacheError("set", key, ConnectionError("down"))

    async def remove(self, key):
        raise CacheError("remove", key, ConnectionError("down"))


@pytest.mark.unit
class TestKeys:
    def test_key_layout(self, ranking_store):
        assert ranking_store.snapshot_key == "test:rankings:snapshot"
        assert ranking_store.history_key("u1") == "test:rankings:history:u1"
        assert ranking_store.history_index_key == "test:rankings:history_index"


@pytest.mark.unit
class TestSnapshotDocuments:
    async def test_missing_snapshot_reads_as_none(self, ranking_store):
        assert await ranking_store.read_snapshot() is None

    async def test_write_then_read(self, ranking_store, make_entry, fixed_now):
        snapshot = build_snapshot(recompute([make_entry("a")]), fixed_now, {"Math": {"a"}})

        await ranking_store.write_snapshot(snapshot)

        assert await ranking_store.read_snapshot() == snapshot

    async def test_corrupt_json_reads_as_none(self, memory_kv, ranking_store):
        await memory_kv.set(ranking_store.snapshot_key, "{not json")

        assert await ranking_store.read_snapshot() is None

    async def test_wrong_shape_reads_as_none(self, memory_kv, ranking_store):
        await memory_kv.set(ranking_store.snapshot_key, "[1, 2, 3]")

        assert await ranking_store.read_snapshot() is None

    async def test_backend_read_failure_reads_as_none(self):
        store = RankingStore(BrokenKeyValueStore())

        assert await store.read_snapshot() is None

    async def test_backend_write_failure_raises(self, fixed_now):
        store = RankingStore(BrokenKeyValueStore())

        with pytest.raises(CacheWriteError) as exc_info:
            await store.write_snapshot(build_snapshot([], fixed_now))

        assert exc_info.value.cache_key == store.snapshot_key


@pytest.mark.unit
class TestHistory:
    async def test_write_history_indexes_user(self, ranking_store, make_event):
        await ranking_store.write_history("u1", [make_event("u1")])
        await ranking_store.write_history("u2", [make_event("u2")])

        assert await ranking_store.read_history_index() == {"u1", "u2"}
        assert await ranking_store.read_history("u1") == [make_event("u1")]

    async def test_unknown_user_has_empty_history(self, ranking_store):
        assert await ranking_store.read_history("nobody") == []

    async def test_corrupt_history_reads_as_empty(self, memory_kv, ranking_store):
        await memory_kv.set(ranking_store.history_key("u1"), '[{"user_id": "u1"}]')

        assert await ranking_store.read_history("u1") == []

    async def test_unreadable_index_is_not_shrunk(self, make_event):
        kv = FlakyKeyValueStore()
        store = RankingStore(kv, key_prefix="p")
        for user_id in ("a", "b", "c"):
            await store.write_history(user_id, [make_event(user_id)])
        kv.fail_reads(store.history_index_key)

        with pytest.raises(CacheWriteError):
            await store.write_history("d", [make_event("d")])

        assert await store.read_history_index() == {"a", "b", "c"}
        assert await store.read_history("d") == [make_event("d")]

        await store.write_history("d", [make_event("d")])

        assert await store.read_history_index() == {"a", "b", "c", "d"}

    async def test_strict_index_read_raises_on_backend_failure(self):
        kv = FlakyKeyValueStore()
        store = RankingStore(kv, key_prefix="p")
        kv.fail_reads(store.history_index_key)

        with pytest.raises(CacheWriteError):
            await store.read_history_index(strict=True)

        assert await store.read_history_index(strict=True) == set()

    async def test_history_order_is_kept(self, ranking_store, make_event, fixed_now):
        events = [
            make_event("u1", completed_at=fixed_now - timedelta(days=2), quiz_id="q1"),
            make_event("u1", completed_at=fixed_now, quiz_id="q2"),
        ]

        await ranking_store.write_history("u1", events)

        assert [e.quiz_id for e in await ranking_store.read_history("u1")] == ["q1", "q2"]


@pytest.mark.unit
class TestClear:
    async def test_clear_removes_every_key(self, memory_kv, ranking_store, make_event, fixed_now):
        await ranking_store.write_snapshot(build_snapshot([], fixed_now))
        await ranking_store.write_history("u1", [make_event("u1")])
        await memory_kv.set("unrelated", "keep")

        await ranking_store.clear()

        assert memory_kv.keys() == ["unrelated"]

    async def test_clear_failure_raises(self):
        with pytest.raises(CacheWriteError):
            await RankingStore(BrokenKeyValueStore()).clear()

    async def test_clear_removes_known_users_missing_from_index(
        self, memory_kv, ranking_store, make_event
    ):
        await ranking_store.write_history("u1", [make_event("u1")])
        await memory_kv.remove(ranking_store.history_index_key)

        await ranking_store.clear(["u1"])

        assert memory_kv.keys() == []

    async def test_clear_with_unreadable_index_removes_known_users_then_raises(
        self, make_event
    ):
        kv = FlakyKeyValueStore()
        store = RankingStore(kv, key_prefix="p")
        await store.write_history("a", [make_event("a")])
        kv.fail_reads(store.history_index_key)

        with pytest.raises(CacheWriteError) as exc_info:
            await store.clear(["a"])

        assert exc_info.value.cache_key == store.history_index_key
        assert kv.keys() == []
