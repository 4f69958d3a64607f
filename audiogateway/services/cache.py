"""Filesystem audio cache keyed by video id.

Layout under the cache directory:
- ``<id>.mp3``: published entries, always complete
- ``<id>.download``: in-progress downloads, never served

The ``.mp3`` suffix is a naming convention; the bytes are whatever
container the upstream delivered.
"""

import os
import re
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Optional

import anyio
import structlog

from audiogateway.core.exceptions import CacheError, InputError, RangeNotSatisfiableError

logger = structlog.get_logger(__name__)

VIDEO_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")
RANGE_PATTERN = re.compile(r"^bytes=(\d*)-(\d*)$")

FINAL_SUFFIX = ".mp3"
TEMP_SUFFIX = ".download"


@dataclass
class ByteRange:
    """A single ``bytes=`` range as requested by the client.

    ``start`` None with ``end`` set means a suffix range (the last ``end`` bytes).
    """

    start: Optional[int]
    end: Optional[int]


def parse_range_header(value: Optional[str]) -> Optional[ByteRange]:
    """
    Parse a ``Range`` header of the form ``bytes=<start>-[<end>]``.

    Returns:
        The requested range, or None if the header is absent or not a single byte range
    """
    if not value:
        return None
    match = RANGE_PATTERN.match(value.strip())
    if not match:
        return None
    start, end = match.groups()
    if not start and not end:
        return None
    byte_range = ByteRange(int(start) if start else None, int(end) if end else None)
    if byte_range.start is not None and byte_range.end is not None and byte_range.end < byte_range.start:
        return None
    return byte_range


@dataclass
class CachedAudio:
    """A readable view of a cache entry, optionally restricted to a byte range.

    ``size`` is snapshotted when the entry is opened.
    """

    path: Path
    size: int
    start: int
    end: int  # inclusive
    partial: bool = False

    @property
    def length(self) -> int:
        return max(self.end - self.start + 1, 0)

    @property
    def content_range(self) -> str:
        return f"bytes {self.start}-{self.end}/{self.size}"

    async def iter_bytes(self, chunk_size: int = 64 * 1024) -> AsyncIterator[bytes]:
        """Yield the bytes in ``[start, end]``."""
        remaining = self.length
        if remaining <= 0:
            return
        async with await anyio.open_file(self.path, "rb") as fh:
            await fh.seek(self.start)
            while remaining > 0:
                chunk = await fh.read(min(chunk_size, remaining))
                if not chunk:
                    break
                remaining -= len(chunk)
                yield chunk


class CacheStore:
    """Owns the cache directory and the only operations allowed on it."""

    def __init__(self, cache_dir: str | Path) -> None:
        """
        Initialize the cache store.

        Args:
            cache_dir: Directory holding cache entries and the cookie file
        """
        self.cache_dir = Path(cache_dir)
        logger.debug("cache_store_initialized", cache_dir=str(self.cache_dir))

    def initialize(self) -> None:
        """
        Create the cache directory if missing and verify it is writable.

        Raises:
            CacheError: If the directory cannot be created or written
        """
        try:
            if not self.cache_dir.exists():
                self.cache_dir.mkdir(parents=True, exist_ok=True)
                logger.info("cache_directory_created", path=str(self.cache_dir))

            # Unique probe name so parallel workers do not collide
            probe = self.cache_dir / f".write_test_{os.getpid()}_{uuid.uuid4().hex}"
            try:
                probe.touch()
                probe.unlink(missing_ok=True)
            except PermissionError as e:
                raise CacheError(f"Cache directory is not writable: {self.cache_dir}") from e

        except OSError as e:
            raise CacheError(f"Failed to initialize cache directory: {e}") from e

        logger.info("cache_initialized", cache_dir=str(self.cache_dir))

    @staticmethod
    def validate_id(video_id: Optional[str]) -> str:
        """
        Validate a video id before it touches the filesystem.

        Raises:
            InputError: If the id is empty or contains characters outside [A-Za-z0-9_-]
        """
        if not video_id:
            raise InputError('Query parameter "videoId" is required')
        if not VIDEO_ID_PATTERN.match(video_id):
            raise InputError(f"Invalid video id: {video_id!r}")
        return video_id

    def final_path(self, video_id: str) -> Path:
        return self.cache_dir / f"{self.validate_id(video_id)}{FINAL_SUFFIX}"

    def temp_path_for(self, video_id: str) -> Path:
        return self.cache_dir / f"{self.validate_id(video_id)}{TEMP_SUFFIX}"

    async def has(self, video_id: str) -> bool:
        return await anyio.Path(self.final_path(video_id)).is_file()

    async def open(self, video_id: str, byte_range: Optional[ByteRange] = None) -> CachedAudio:
        """
        Open a published entry.

        Args:
            video_id: Video id
            byte_range: Optional requested range; ``end`` is clamped to the file

        Returns:
            CachedAudio covering the whole file or the adjusted range

        Raises:
            CacheError: If the entry does not exist
            RangeNotSatisfiableError: If the range starts past the end of the file
        """
        path = self.final_path(video_id)
        try:
            size = (await anyio.Path(path).stat()).st_size
        except FileNotFoundError as e:
            raise CacheError(f"No cache entry for {video_id}") from e

        if byte_range is None:
            return CachedAudio(path=path, size=size, start=0, end=size - 1)

        if byte_range.start is None:
            # Suffix range: last N bytes
            start = max(size - (byte_range.end or 0), 0)
            end = size - 1
        else:
            start = byte_range.start
            end = size - 1 if byte_range.end is None else min(byte_range.end, size - 1)

        if start >= size or end < start:
            raise RangeNotSatisfiableError(
                f"Range start {start} is beyond the end of {video_id} ({size} bytes)", size=size
            )

        return CachedAudio(path=path, size=size, start=start, end=end, partial=True)

    async def publish(self, video_id: str, src: Path) -> Path:
        """
        Atomically move a finished download to its final path.

        ``src`` must live under the cache directory so the move is a rename
        within one filesystem. An existing entry is replaced.

        Raises:
            CacheError: If ``src`` is missing or empty, or the rename fails
        """
        final = self.final_path(video_id)
        source = anyio.Path(src)

        if not await source.is_file():
            raise CacheError(f"Downloaded file for {video_id} is missing at {src}")
        if (await source.stat()).st_size == 0:
            await source.unlink(missing_ok=True)
            raise CacheError(f"Downloaded file for {video_id} is empty")

        try:
            await source.replace(final)
        except OSError as e:
            raise CacheError(f"Failed to publish {video_id}: {e}") from e

        size = (await anyio.Path(final).stat()).st_size
        logger.info("cache_published", video_id=video_id, path=str(final), size=size)
        return final

    async def discard_temp(self, video_id: str) -> None:
        """Remove any in-progress download for ``video_id``."""
        await anyio.Path(self.temp_path_for(video_id)).unlink(missing_ok=True)

    def count_entries(self) -> int:
        """Number of published entries."""
        if not self.cache_dir.is_dir():
            return 0
        return sum(1 for _ in self.cache_dir.glob(f"*{FINAL_SUFFIX}"))
