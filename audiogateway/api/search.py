"""Search endpoint."""

from typing import Any, List

import structlog
from fastapi import APIRouter, Depends, Query, status

from audiogateway.api.schemas import ErrorResponse, VideoSummaryResponse
from audiogateway.core.errors import APIError, describe
from audiogateway.providers.runner import StrategyRunner

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["search"])


# Dependency placeholder for the strategy runner
async def get_strategy_runner() -> StrategyRunner:
    """Get strategy runner instance."""
    raise NotImplementedError("Strategy runner dependency not configured")


@router.get(
    "/search",
    response_model=List[VideoSummaryResponse],
    responses={
        400: {"model": ErrorResponse, "description": "Missing query"},
        500: {"model": ErrorResponse, "description": "Search failed"},
    },
)
async def search(
    q: str = Query("", description="Free-text search query"),  # noqa: B008
    runner: StrategyRunner = Depends(get_strategy_runner),  # noqa: B008
) -> Any:
    """
    Search for videos.

    Strategies are consulted in order; the first non-empty result wins.
    When every strategy comes back empty or fails the answer is an empty list.

    Raises:
        APIError: 400 for an empty query, 500 if the search itself blew up
    """
    query = q.strip()
    if not query:
        raise APIError(status.HTTP_400_BAD_REQUEST, 'Query parameter "q" is required')

    logger.info("search_requested", query=query)

    try:
        result = await runner.search(query)
    except Exception as e:
        logger.error("search_failed", query=query, error=str(e), exc_info=True)
        raise APIError(
            status.HTTP_500_INTERNAL_SERVER_ERROR, "Search failed", details=describe(e)
        ) from e

    videos = result.value or []
    logger.info("search_completed", query=query, strategy=result.strategy, results=len(videos))
    return [video.to_dict() for video in videos]
