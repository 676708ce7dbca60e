"""
Unit tests for RankingPersistence: remote-first loading with cache fallback.
"""

import asyncio

import pytest

from quizrank.modules.ranking.models import RankingSnapshot
from quizrank.modules.ranking.ordering import recompute
from quizrank.modules.ranking.persistence import RankingPersistence
from quizrank.modules.ranking.store import RankingStore
from quizrank.modules.ranking.windows import build_snapshot
from quizrank.modules.shared.exceptions import CacheWriteError

from tests.fakes import FakeRemoteSource


class SlowRemoteSource(FakeRemoteSource):
    async def fetch_global(self):
        await asyncio.sleep(5)
        return []


@pytest.mark.unit
class TestLoad:
    async def test_remote_is_preferred(self, ranking_store, make_entry, fixed_now):
        """Served order is kept as-is, even if it disagrees with the sort rules."""
        remote = FakeRemoteSource(
            [
                make_entry("low", total_points=1, position=1),
                make_entry("high", total_points=99, position=2),
            ]
        )
        await ranking_store.write_snapshot(
            build_snapshot(recompute([make_entry("cached")]), fixed_now)
        )

        snapshot = await RankingPersistence(ranking_store, remote).load(fixed_now)

        assert [e.user_id for e in snapshot.global_ranking] == ["low", "high"]
        assert snapshot.generated_at == fixed_now

    async def test_remote_reuses_cached_categories(self, ranking_store, make_entry, fixed_now):
        cached = build_snapshot(recompute([make_entry("a")]), fixed_now, {"Math": {"a"}})
        await ranking_store.write_snapshot(cached)
        remote = FakeRemoteSource([make_entry("a", total_points=50, position=1)])

        snapshot = await RankingPersistence(ranking_store, remote).load(fixed_now)

        assert [e.total_points for e in snapshot.by_category["Math"]] == [50]

    async def test_falls_back_to_cache(
        self, ranking_store, unavailable_remote, make_entry, fixed_now
    ):
        cached = build_snapshot(recompute([make_entry("a")]), fixed_now)
        await ranking_store.write_snapshot(cached)

        snapshot = await RankingPersistence(ranking_store, unavailable_remote).load(fixed_now)

        assert snapshot == cached
        assert unavailable_remote.calls == 1

    async def test_unexpected_remote_errors_fall_back(self, ranking_store, fixed_now):
        remote = FakeRemoteSource(error=ConnectionResetError("reset by peer"))

        snapshot = await RankingPersistence(ranking_store, remote).load(fixed_now)

        assert snapshot.is_empty

    async def test_remote_timeout_falls_back(self, ranking_store, make_entry, fixed_now):
        cached = build_snapshot(recompute([make_entry("a")]), fixed_now)
        await ranking_store.write_snapshot(cached)
        persistence = RankingPersistence(ranking_store, SlowRemoteSource(), remote_timeout=0.01)

        assert await persistence.load(fixed_now) == cached

    async def test_no_remote_reads_cache(self, ranking_store, make_entry, fixed_now):
        cached = build_snapshot(recompute([make_entry("a")]), fixed_now)
        await ranking_store.write_snapshot(cached)

        assert await RankingPersistence(ranking_store).load(fixed_now) == cached

    async def test_nothing_available_is_empty(self, ranking_store, unavailable_remote, fixed_now):
        snapshot = await RankingPersistence(ranking_store, unavailable_remote).load(fixed_now)

        assert snapshot == RankingSnapshot.empty(fixed_now)


@pytest.mark.unit
class TestSave:
    async def test_save_writes_snapshot(self, ranking_store, make_entry, fixed_now):
        snapshot = build_snapshot(recompute([make_entry("a")]), fixed_now)

        assert await RankingPersistence(ranking_store).save(snapshot) is True
        assert await ranking_store.read_snapshot() == snapshot

    async def test_save_failure_is_swallowed(self, mocker, fixed_now):
        store = mocker.Mock(spec=RankingStore)
        store.write_snapshot = mocker.AsyncMock(side_effect=CacheWriteError("k"))

        assert await RankingPersistence(store).save(RankingSnapshot.empty(fixed_now)) is False

    async def test_close_closes_remote_and_store(self, mocker, fake_remote):
        store = mocker.Mock(spec=RankingStore)
        store.close = mocker.AsyncMock()

        await RankingPersistence(store, fake_remote).close()

        assert fake_remote.closed is True
        store.close.assert_awaited_once()
