"""Invidious read-mirror adapter."""

from typing import Any, List, Optional
from urllib.parse import quote

from audiogateway.core.exceptions import ProtocolError
from audiogateway.models.video import (
    MAX_SEARCH_RESULTS,
    AudioFormat,
    VideoSummary,
    pick_best_audio,
)
from audiogateway.providers.base import MirrorAdapter, Strategy


class InvidiousProvider(MirrorAdapter):
    """Search and audio discovery through the Invidious ``/api/v1`` endpoints."""

    name = "invidious"

    def as_strategy(self) -> Strategy:
        return Strategy(name=self.name, search=self.search, fetch_audio=self.fetch_audio)

    async def search(self, query: str) -> List[VideoSummary]:
        result = await self._first_non_empty("search", lambda i: self._search_instance(i, query))
        return result or []

    async def find_audio(self, video_id: str) -> Optional[str]:
        best = await self._first_non_empty("find_audio", lambda i: self._audio_instance(i, video_id))
        return best.url if best else None

    async def _search_instance(self, instance: str, query: str) -> List[VideoSummary]:
        url = f"{instance}/api/v1/search?q={quote(query)}&type=video"
        payload = await self.http.get_json(url)
        if not isinstance(payload, list):
            raise ProtocolError(f"Expected a result list from {instance}")

        videos: List[VideoSummary] = []
        for item in payload:
            if not isinstance(item, dict) or item.get("type") != "video":
                continue
            video_id = item.get("videoId")
            title = item.get("title")
            if not video_id or not title:
                continue
            videos.append(
                VideoSummary.build(
                    video_id=video_id,
                    title=title,
                    duration=item.get("lengthSeconds"),
                    thumbnail=self._thumbnail(instance, item.get("videoThumbnails")),
                    author=item.get("author"),
                )
            )
            if len(videos) >= MAX_SEARCH_RESULTS:
                break
        return videos

    async def _audio_instance(self, instance: str, video_id: str) -> Optional[AudioFormat]:
        payload = await self.http.get_json(f"{instance}/api/v1/videos/{video_id}")
        if not isinstance(payload, dict) or not isinstance(payload.get("adaptiveFormats"), list):
            raise ProtocolError(f"No adaptiveFormats in response from {instance}")

        formats = []
        for fmt in payload["adaptiveFormats"]:
            mime = str(fmt.get("type", ""))
            if not mime.startswith("audio/") or not fmt.get("url"):
                continue
            formats.append(
                AudioFormat(
                    url=fmt["url"],
                    container=mime.split(";")[0].split("/")[-1],
                    bitrate=_as_int(fmt.get("bitrate")),
                )
            )
        return pick_best_audio(formats)

    @staticmethod
    def _thumbnail(instance: str, thumbnails: Any) -> Optional[str]:
        if not isinstance(thumbnails, list) or not thumbnails:
            return None
        url = thumbnails[0].get("url") if isinstance(thumbnails[0], dict) else None
        if not url:
            return None
        # Some instances return protocol-relative or instance-relative URLs
        if url.startswith("//"):
            return f"https:{url}"
        if url.startswith("/"):
            return f"{instance}{url}"
        return url


def _as_int(value: Any) -> int:
    # Invidious reports bitrate as a string
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0
