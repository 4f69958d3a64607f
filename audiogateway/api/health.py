"""Health check endpoint."""

from typing import Any

import structlog
from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from audiogateway import __version__
from audiogateway.api.schemas import ComponentHealth, HealthResponse
from audiogateway.core.checks import CheckResult, check_cache_dir, check_extraction_tool
from audiogateway.core.config import ExtractionConfig
from audiogateway.services.audio_service import AudioService

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["health"])


# Dependency placeholders, overridden in main
async def get_audio_service() -> AudioService:
    """Get audio service instance."""
    raise NotImplementedError("Audio service dependency not configured")


async def get_extraction_config() -> ExtractionConfig:
    """Get extraction tool configuration."""
    raise NotImplementedError("Extraction config dependency not configured")


def _component(result: CheckResult) -> ComponentHealth:
    if result.available:
        return ComponentHealth(status="healthy", version=result.version)
    return ComponentHealth(status="unhealthy", error=result.error)


@router.get(
    "/health",
    response_model=HealthResponse,
    responses={503: {"description": "Cache directory unusable"}},
)
async def health_check(
    audio_service: AudioService = Depends(get_audio_service),  # noqa: B008
    extraction: ExtractionConfig = Depends(get_extraction_config),  # noqa: B008
) -> Any:
    """
    Report gateway health.

    The cache directory is required; the extraction tool only affects the
    last fallback strategy, so its absence degrades rather than fails.
    """
    cache = check_cache_dir(audio_service.cache.cache_dir)
    ytdlp = await check_extraction_tool(extraction.binary)

    if not cache.available:
        overall = "unhealthy"
    elif not ytdlp.available:
        overall = "degraded"
    else:
        overall = "healthy"

    response = HealthResponse(
        status=overall,
        version=__version__,
        cached_entries=audio_service.cache.count_entries(),
        inflight_fetches=audio_service.pending(),
        components={"cache": _component(cache), "ytdlp": _component(ytdlp)},
    )

    if overall == "unhealthy":
        logger.warning("health_check_failed", components=response.model_dump()["components"])
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=response.model_dump(),
        )

    return response
