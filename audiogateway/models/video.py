"""Video data models shared by every mirror adapter."""

from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, Optional

# Upstream thumbnail-by-id pattern, used when a mirror omits the thumbnail
THUMBNAIL_URL_TEMPLATE = "https://i.ytimg.com/vi/{video_id}/hqdefault.jpg"

WATCH_URL_TEMPLATE = "https://www.youtube.com/watch?v={video_id}"

MAX_SEARCH_RESULTS = 10


def format_duration(seconds: Optional[float]) -> str:
    """Format a duration as ``m:ss`` with zero-padded seconds.

    Hours are folded into minutes so that ``parse_duration`` inverts the
    result for every non-negative integer. Zero or missing renders as ``0:00``.
    """
    if not seconds or seconds < 0:
        return "0:00"
    total = int(seconds)
    minutes, secs = divmod(total, 60)
    return f"{minutes}:{secs:02d}"


def parse_duration(timestamp: str) -> int:
    """Parse an ``m:ss`` timestamp back to whole seconds."""
    minutes, _, secs = timestamp.partition(":")
    return int(minutes) * 60 + int(secs or 0)


def thumbnail_for(video_id: str) -> str:
    return THUMBNAIL_URL_TEMPLATE.format(video_id=video_id)


def watch_url(video_id: str) -> str:
    return WATCH_URL_TEMPLATE.format(video_id=video_id)


@dataclass
class VideoSummary:
    """A normalized search result.

    ``timestamp`` is always the ``m:ss`` rendering of ``duration``.
    """

    id: str
    title: str
    timestamp: str
    duration: int  # seconds
    thumbnail: str
    author: str

    @classmethod
    def build(
        cls,
        video_id: str,
        title: str,
        duration: Optional[Any] = None,
        thumbnail: Optional[str] = None,
        author: Optional[str] = None,
    ) -> "VideoSummary":
        """Build a summary, applying the shared normalization rules."""
        try:
            seconds = max(int(float(duration or 0)), 0)
        except (TypeError, ValueError):
            seconds = 0
        return cls(
            id=video_id,
            title=title,
            timestamp=format_duration(seconds),
            duration=seconds,
            thumbnail=thumbnail or thumbnail_for(video_id),
            author=author or "",
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class AudioFormat:
    """An audio-only variant discovered on a read-mirror."""

    url: str
    container: str
    bitrate: int  # bits per second


def pick_best_audio(formats: Iterable[AudioFormat]) -> Optional[AudioFormat]:
    """Return the highest-bitrate format, or None when there is none."""
    ranked = sorted(formats, key=lambda f: f.bitrate, reverse=True)
    return ranked[0] if ranked else None
