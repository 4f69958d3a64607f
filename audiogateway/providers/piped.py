"""Piped read-mirror adapter."""

from typing import List, Optional
from urllib.parse import parse_qs, quote, urlsplit

from audiogateway.core.exceptions import ProtocolError
from audiogateway.models.video import (
    MAX_SEARCH_RESULTS,
    AudioFormat,
    VideoSummary,
    pick_best_audio,
)
from audiogateway.providers.base import MirrorAdapter, Strategy


def extract_video_id(url: str) -> Optional[str]:
    """
    Extract a video id from a Piped item URL.

    Accepts both ``/watch?v=<id>`` and path-tail forms such as ``/shorts/<id>``.
    """
    if not url:
        return None
    parts = urlsplit(url)
    ids = parse_qs(parts.query).get("v")
    if ids and ids[0]:
        return ids[0]
    tail = parts.path.rstrip("/").rsplit("/", 1)[-1]
    return tail or None


class PipedProvider(MirrorAdapter):
    """Search and audio discovery through the Piped API."""

    name = "piped"

    def as_strategy(self) -> Strategy:
        return Strategy(name=self.name, search=self.search, fetch_audio=self.fetch_audio)

    async def search(self, query: str) -> List[VideoSummary]:
        result = await self._first_non_empty("search", lambda i: self._search_instance(i, query))
        return result or []

    async def find_audio(self, video_id: str) -> Optional[str]:
        best = await self._first_non_empty("find_audio", lambda i: self._audio_instance(i, video_id))
        return best.url if best else None

    async def _search_instance(self, instance: str, query: str) -> List[VideoSummary]:
        url = f"{instance}/search?q={quote(query)}&filter=videos"
        payload = await self.http.get_json(url)
        if not isinstance(payload, dict) or not isinstance(payload.get("items"), list):
            raise ProtocolError(f"No items in search response from {instance}")

        videos: List[VideoSummary] = []
        for item in payload["items"]:
            if not isinstance(item, dict) or item.get("type") != "stream":
                continue
            video_id = extract_video_id(item.get("url", ""))
            title = item.get("title")
            if not video_id or not title:
                continue
            videos.append(
                VideoSummary.build(
                    video_id=video_id,
                    title=title,
                    duration=item.get("duration"),
                    thumbnail=item.get("thumbnail"),
                    author=item.get("uploaderName"),
                )
            )
            if len(videos) >= MAX_SEARCH_RESULTS:
                break
        return videos

    async def _audio_instance(self, instance: str, video_id: str) -> Optional[AudioFormat]:
        payload = await self.http.get_json(f"{instance}/streams/{video_id}")
        if not isinstance(payload, dict) or not isinstance(payload.get("audioStreams"), list):
            raise ProtocolError(f"No audioStreams in response from {instance}")

        formats = [
            AudioFormat(
                url=stream["url"],
                container=str(stream.get("mimeType", "")).split(";")[0].split("/")[-1],
                bitrate=int(stream.get("bitrate") or 0),
            )
            for stream in payload["audioStreams"]
            if isinstance(stream, dict) and stream.get("url")
        ]
        return pick_best_audio(formats)
