"""Cache-or-fetch orchestration for stream requests.

State machine for one request::

    RECEIVED -> cache hit  -> SERVE_CACHED -> DONE
             -> cache miss -> FETCH -> PUBLISH -> SERVE_CACHED -> DONE
                                    -> FAIL
"""

import asyncio
import contextlib
from pathlib import Path
from typing import Dict

import structlog

from audiogateway.core.exceptions import DownloadFailedError
from audiogateway.providers.runner import StrategyRunner
from audiogateway.services.cache import CacheStore

logger = structlog.get_logger(__name__)


class AudioService:
    """Makes sure an id is in the cache, fetching it through the strategy chain on a miss.

    Concurrent misses for the same id share one fetch. The fetch runs as its
    own task, so a client disconnecting mid-request does not stop it from
    completing and publishing.
    """

    def __init__(self, cache: CacheStore, runner: StrategyRunner) -> None:
        self.cache = cache
        self.runner = runner
        self._inflight: Dict[str, asyncio.Task] = {}

    def pending(self) -> int:
        return len(self._inflight)

    async def ensure_cached(self, video_id: str) -> bool:
        """
        Make sure ``video_id`` is published in the cache.

        Returns:
            True if it was already cached, False if this call waited on a fetch

        Raises:
            DownloadFailedError: If every strategy failed
            CacheError: If the download could not be published
        """
        if await self.cache.has(video_id):
            logger.info("cache_hit", video_id=video_id)
            return True

        task = self._inflight.get(video_id)
        if task is None:
            task = asyncio.create_task(self._fetch(video_id), name=f"fetch-{video_id}")
            self._inflight[video_id] = task
            task.add_done_callback(lambda done: self._forget(video_id, done))
        else:
            logger.info("stream_fetch_joined", video_id=video_id)

        await asyncio.shield(task)
        return False

    def _forget(self, video_id: str, task: asyncio.Task) -> None:
        if self._inflight.get(video_id) is task:
            del self._inflight[video_id]

    async def _fetch(self, video_id: str) -> Path:
        # A fetch that finished between our miss and now already published the entry
        if await self.cache.has(video_id):
            return self.cache.final_path(video_id)

        temp_path = self.cache.temp_path_for(video_id)
        logger.info("stream_fetch_started", video_id=video_id)

        try:
            result = await self.runner.fetch_audio(video_id, temp_path)
            if result.value is None:
                raise DownloadFailedError("All download methods failed", details=result.last_error)
            path = await self.cache.publish(video_id, temp_path)
        except BaseException as e:
            await self.cache.discard_temp(video_id)
            if isinstance(e, Exception):
                logger.warning(
                    "stream_fetch_failed",
                    video_id=video_id,
                    error_type=type(e).__name__,
                    error=str(e)[:500],
                )
            raise

        logger.info("stream_fetch_completed", video_id=video_id, strategy=result.strategy)
        return path

    async def close(self) -> None:
        """Cancel in-flight fetches; their temp files are removed as they unwind."""
        tasks = list(self._inflight.values())
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await task
