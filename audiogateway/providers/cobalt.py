"""Cobalt extraction-mirror adapter.

Cobalt performs the extraction server-side and answers with a short-lived
tunnel or redirect URL that can be downloaded like any other file.
"""

from typing import Any, Dict, Optional

import structlog

from audiogateway.core.exceptions import ProtocolError, UpstreamError
from audiogateway.models.video import watch_url
from audiogateway.providers.base import MirrorAdapter, Strategy

logger = structlog.get_logger(__name__)

ACCEPTED_STATUSES = ("tunnel", "redirect")


class CobaltProvider(MirrorAdapter):
    """Audio discovery through Cobalt instances. Cobalt offers no search."""

    name = "cobalt"

    def __init__(self, *args: Any, timeout: Optional[float] = None, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.timeout = timeout

    def as_strategy(self) -> Strategy:
        return Strategy(name=self.name, fetch_audio=self.fetch_audio)

    @staticmethod
    def build_request(video_id: str) -> Dict[str, str]:
        return {
            "url": watch_url(video_id),
            "downloadMode": "audio",
            "audioFormat": "mp3",
            "audioBitrate": "128",
        }

    async def find_audio(self, video_id: str) -> Optional[str]:
        return await self._first_non_empty("find_audio", lambda i: self._audio_instance(i, video_id))

    async def _audio_instance(self, instance: str, video_id: str) -> Optional[str]:
        try:
            payload = await self.http.post_json(
                f"{instance}/", self.build_request(video_id), timeout=self.timeout
            )
        except UpstreamError as e:
            # Cobalt reports its own errors with a 4xx status and a JSON body
            if isinstance(e.payload, dict) and e.payload.get("status") == "error":
                self._log_error(instance, e.payload)
                return None
            raise

        if not isinstance(payload, dict):
            raise ProtocolError(f"Unexpected Cobalt response from {instance}")

        status = payload.get("status")
        if status == "error":
            self._log_error(instance, payload)
            return None
        if status not in ACCEPTED_STATUSES:
            raise ProtocolError(f"Unsupported Cobalt status {status!r} from {instance}")
        if not payload.get("url"):
            raise ProtocolError(f"Cobalt {status} response without url from {instance}")
        return payload["url"]

    @staticmethod
    def _log_error(instance: str, payload: Dict[str, Any]) -> None:
        error = payload.get("error")
        code = error.get("code") if isinstance(error, dict) else None
        logger.warning("cobalt_error", strategy="cobalt", instance=instance, code=code)
