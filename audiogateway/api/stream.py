"""Audio stream endpoint with byte-range support."""

from typing import Dict

import structlog
from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import StreamingResponse

from audiogateway.api.schemas import ErrorResponse
from audiogateway.core.errors import APIError
from audiogateway.core.exceptions import InputError, RangeNotSatisfiableError
from audiogateway.services.audio_service import AudioService
from audiogateway.services.cache import CachedAudio, CacheStore, parse_range_header

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["stream"])

AUDIO_MEDIA_TYPE = "audio/mpeg"


# Dependency placeholder for the audio service
async def get_audio_service() -> AudioService:
    """Get audio service instance."""
    raise NotImplementedError("Audio service dependency not configured")


def audio_response(audio: CachedAudio) -> StreamingResponse:
    """Build a 200 or 206 response streaming ``audio`` from disk."""
    headers: Dict[str, str] = {
        "Accept-Ranges": "bytes",
        "Content-Length": str(audio.length),
    }
    if audio.partial:
        headers["Content-Range"] = audio.content_range

    return StreamingResponse(
        audio.iter_bytes(),
        status_code=status.HTTP_206_PARTIAL_CONTENT if audio.partial else status.HTTP_200_OK,
        media_type=AUDIO_MEDIA_TYPE,
        headers=headers,
    )


@router.get(
    "/stream",
    response_class=StreamingResponse,
    responses={
        200: {"content": {AUDIO_MEDIA_TYPE: {}}, "description": "Whole file"},
        206: {"content": {AUDIO_MEDIA_TYPE: {}}, "description": "Requested byte range"},
        400: {"model": ErrorResponse, "description": "Missing or invalid videoId"},
        416: {"model": ErrorResponse, "description": "Range starts past the end of the file"},
        500: {"model": ErrorResponse, "description": "Stream failed"},
    },
)
async def stream_audio(
    request: Request,
    video_id: str = Query("", alias="videoId", description="Upstream video id"),  # noqa: B008
    audio_service: AudioService = Depends(get_audio_service),  # noqa: B008
) -> StreamingResponse:
    """
    Stream the audio for a video, fetching it into the cache first on a miss.

    Range requests are honored only for entries that were already cached
    when the request arrived; a cold request always receives the whole body.

    Raises:
        APIError: 400 for a bad id, 416 for an unsatisfiable range, 500 when
            every download strategy failed
    """
    try:
        video_id = CacheStore.validate_id(video_id.strip())
    except InputError as e:
        raise APIError(status.HTTP_400_BAD_REQUEST, str(e)) from e

    try:
        was_cached = await audio_service.ensure_cached(video_id)
    except Exception as e:
        raise APIError.from_exception(e, "Stream failed") from e

    byte_range = None
    if was_cached:
        byte_range = parse_range_header(request.headers.get("range"))

    try:
        audio = await audio_service.cache.open(video_id, byte_range)
    except RangeNotSatisfiableError as e:
        raise APIError(
            status.HTTP_416_RANGE_NOT_SATISFIABLE,
            "Range not satisfiable",
            details=str(e),
            headers={"Content-Range": f"bytes */{e.size}", "Accept-Ranges": "bytes"},
        ) from e
    except Exception as e:
        raise APIError.from_exception(e, "Stream failed") from e

    logger.info(
        "stream_serving",
        video_id=video_id,
        cached=was_cached,
        partial=audio.partial,
        start=audio.start,
        end=audio.end,
        size=audio.size,
    )
    return audio_response(audio)
