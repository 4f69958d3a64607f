"""Strategy record and the shared mirror adapter base."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, TypeVar

import structlog

from audiogateway.core.http import HttpClient
from audiogateway.models.video import VideoSummary

logger = structlog.get_logger(__name__)

T = TypeVar("T")

SearchOperation = Callable[[str], Awaitable[List[VideoSummary]]]
FetchOperation = Callable[[str, Path], Awaitable[Optional[Path]]]


@dataclass
class Strategy:
    """One named approach for search and/or audio fetch.

    A provider contributes whichever operations it supports; the runner
    only looks at the capability it needs.
    """

    name: str
    search: Optional[SearchOperation] = None
    fetch_audio: Optional[FetchOperation] = None


class MirrorAdapter(ABC):
    """Base class for mirror providers backed by an ordered instance list."""

    name: str = "mirror"

    def __init__(self, http: HttpClient, instances: List[str]):
        """
        Initialize the adapter.

        Args:
            http: Shared HTTP client
            instances: Instance base URLs, tried in order
        """
        self.http = http
        self.instances = list(instances)

    @abstractmethod
    async def find_audio(self, video_id: str) -> Optional[str]:
        """
        Discover a direct audio URL for a video.

        Returns:
            URL of the best audio variant, or None if no instance yielded one
        """
        pass

    @abstractmethod
    def as_strategy(self) -> Strategy:
        """Expose the operations this provider supports as a Strategy record."""
        pass

    async def fetch_audio(self, video_id: str, dest: Path) -> Optional[Path]:
        """Discover an audio URL and download it to ``dest``."""
        url = await self.find_audio(video_id)
        if not url:
            return None

        logger.info("mirror_download_started", strategy=self.name, video_id=video_id)
        await self.http.download(url, dest)
        return dest

    async def _first_non_empty(
        self, operation: str, call: Callable[[str], Awaitable[Optional[T]]]
    ) -> Optional[T]:
        """
        Run ``call`` against each instance until one returns a non-empty result.

        Instances that raise are logged and skipped; errors never escape.
        """
        for instance in self.instances:
            try:
                result = await call(instance)
            except Exception as e:
                logger.warning(
                    "mirror_instance_failed",
                    strategy=self.name,
                    operation=operation,
                    instance=instance,
                    error_type=type(e).__name__,
                    error=str(e),
                )
                continue

            if not result:
                logger.info(
                    "mirror_instance_empty",
                    strategy=self.name,
                    operation=operation,
                    instance=instance,
                )
                continue

            logger.info(
                "mirror_instance_succeeded",
                strategy=self.name,
                operation=operation,
                instance=instance,
            )
            return result

        return None
