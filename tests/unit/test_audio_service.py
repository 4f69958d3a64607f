"""Tests for cache-or-fetch orchestration"""

import asyncio
from pathlib import Path
from typing import List, Optional

import pytest

from audiogateway.core.exceptions import DownloadFailedError, NetworkError
from audiogateway.providers.base import Strategy
from audiogateway.providers.runner import StrategyRunner
from audiogateway.services.audio_service import AudioService
from audiogateway.services.cache import CacheStore


class FakeFetcher:
    """Fetch strategy that writes fixed bytes after an optional delay."""

    def __init__(self, payload: Optional[bytes] = b"abcdefghij", delay: float = 0.0):
        self.payload = payload
        self.delay = delay
        self.calls: List[str] = []

    async def __call__(self, video_id: str, dest: Path) -> Optional[Path]:
        self.calls.append(video_id)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.payload is None:
            return None
        dest.write_bytes(self.payload)
        return dest


class PartialThenFail:
    """Writes some bytes to the temp path, then fails like a dropped connection."""

    async def __call__(self, video_id: str, dest: Path) -> Optional[Path]:
        dest.write_bytes(b"abc")
        raise NetworkError("connection reset")


def make_service(store: CacheStore, *fetchers) -> AudioService:
    strategies = {
        f"s{n}": Strategy(name=f"s{n}", fetch_audio=fetcher) for n, fetcher in enumerate(fetchers)
    }
    runner = StrategyRunner(strategies, search_order=[], fetch_order=list(strategies))
    return AudioService(store, runner)


@pytest.fixture
def store(tmp_path: Path) -> CacheStore:
    store = CacheStore(tmp_path)
    store.initialize()
    return store


class TestEnsureCached:
    """Test hit, miss and failure paths"""

    @pytest.mark.asyncio
    async def test_miss_fetches_and_publishes(self, store: CacheStore) -> None:
        """Test that a miss downloads and publishes the entry."""
        fetcher = FakeFetcher()
        service = make_service(store, fetcher)

        was_cached = await service.ensure_cached("X")

        assert was_cached is False
        assert store.final_path("X").read_bytes() == b"abcdefghij"
        assert not store.temp_path_for("X").exists()
        assert fetcher.calls == ["X"]

    @pytest.mark.asyncio
    async def test_hit_skips_fetch(self, store: CacheStore) -> None:
        """Test that a hit never calls a strategy."""
        store.final_path("X").write_bytes(b"cached")
        fetcher = FakeFetcher()
        service = make_service(store, fetcher)

        assert await service.ensure_cached("X") is True
        assert fetcher.calls == []

    @pytest.mark.asyncio
    async def test_second_call_is_a_hit(self, store: CacheStore) -> None:
        """Test that the second call for an id is a hit."""
        fetcher = FakeFetcher()
        service = make_service(store, fetcher)

        await service.ensure_cached("X")
        assert await service.ensure_cached("X") is True
        assert fetcher.calls == ["X"]

    @pytest.mark.asyncio
    async def test_falls_through_to_next_strategy(self, store: CacheStore) -> None:
        """Test fallback after a partial download fails."""
        service = make_service(store, PartialThenFail(), FakeFetcher(payload=b"XY"))

        await service.ensure_cached("Y")

        assert store.final_path("Y").read_bytes() == b"XY"
        assert not store.temp_path_for("Y").exists()

    @pytest.mark.asyncio
    async def test_all_failed(self, store: CacheStore) -> None:
        """Test DownloadFailedError when every strategy fails."""
        service = make_service(store, PartialThenFail(), FakeFetcher(payload=None))

        with pytest.raises(DownloadFailedError) as exc_info:
            await service.ensure_cached("Z")

        assert str(exc_info.value) == "All download methods failed"
        assert exc_info.value.details == "connection reset"
        assert not store.final_path("Z").exists()
        assert not store.temp_path_for("Z").exists()
        assert service.pending() == 0


class TestSingleFlight:
    """Test concurrent misses share one fetch"""

    @pytest.mark.asyncio
    async def test_concurrent_misses_share_fetch(self, store: CacheStore) -> None:
        """Test that concurrent misses share a single fetch."""
        fetcher = FakeFetcher(delay=0.1)
        service = make_service(store, fetcher)

        results = await asyncio.gather(
            service.ensure_cached("W"), service.ensure_cached("W"), service.ensure_cached("W")
        )

        assert results == [False, False, False]
        assert fetcher.calls == ["W"]
        assert sorted(p.name for p in store.cache_dir.iterdir()) == ["W.mp3"]
        assert service.pending() == 0

    @pytest.mark.asyncio
    async def test_different_ids_fetch_independently(self, store: CacheStore) -> None:
        """Test that different ids fetch independently."""
        fetcher = FakeFetcher(delay=0.05)
        service = make_service(store, fetcher)

        await asyncio.gather(service.ensure_cached("A"), service.ensure_cached("B"))

        assert sorted(fetcher.calls) == ["A", "B"]

    @pytest.mark.asyncio
    async def test_cancelled_waiter_does_not_stop_fetch(self, store: CacheStore) -> None:
        """Test that cancelling one waiter does not abort the shared fetch."""
        fetcher = FakeFetcher(delay=0.1)
        service = make_service(store, fetcher)

        waiter = asyncio.create_task(service.ensure_cached("W"))
        await asyncio.sleep(0.02)
        waiter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter

        assert service.pending() == 1
        await asyncio.sleep(0.2)

        assert store.final_path("W").read_bytes() == b"abcdefghij"
        assert service.pending() == 0

    @pytest.mark.asyncio
    async def test_close_cancels_and_cleans_up(self, store: CacheStore) -> None:
        """Test that close cancels in-flight fetches and removes temp files."""
        class SlowPartial:
            async def __call__(self, video_id: str, dest: Path) -> Optional[Path]:
                dest.write_bytes(b"abc")
                await asyncio.sleep(10)
                return dest

        service = make_service(store, SlowPartial())
        waiter = asyncio.create_task(service.ensure_cached("V"))
        await asyncio.sleep(0.02)

        await service.close()

        with pytest.raises(asyncio.CancelledError):
            await waiter
        assert not store.temp_path_for("V").exists()
        assert not store.final_path("V").exists()
