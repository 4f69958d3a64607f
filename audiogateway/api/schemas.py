"""Response schemas for API endpoints.

Pydantic models used for response serialization and the OpenAPI examples.
Field names follow what the browser client reads, so they are camelCase
where the client expects it.
"""

from typing import Dict, Literal, Optional

from pydantic import BaseModel, Field


class VideoSummaryResponse(BaseModel):
    """One search result."""

    id: str = Field(..., examples=["dQw4w9WgXcQ"])
    title: str = Field(..., examples=["Never Gonna Give You Up"])
    timestamp: str = Field(..., description="Duration rendered as m:ss", examples=["3:33"])
    duration: int = Field(..., description="Duration in seconds", examples=[213])
    thumbnail: str = Field(
        ..., examples=["https://i.ytimg.com/vi/dQw4w9WgXcQ/hqdefault.jpg"]
    )
    author: str = Field(..., examples=["Rick Astley"])


class ErrorResponse(BaseModel):
    """Error body returned by every endpoint."""

    error: str = Field(..., examples=["Stream failed"])
    details: Optional[str] = Field(None, examples=["All download methods failed"])


class ComponentHealth(BaseModel):
    """Health status of a single component."""

    status: Literal["healthy", "unhealthy"] = Field(..., examples=["healthy"])
    version: Optional[str] = Field(default=None, examples=["2025.01.15"])
    error: Optional[str] = Field(default=None, examples=["yt-dlp not found"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: Literal["healthy", "degraded", "unhealthy"] = Field(..., examples=["healthy"])
    version: str = Field(..., examples=["1.0.0"])
    cached_entries: int = Field(..., examples=[42])
    inflight_fetches: int = Field(..., examples=[0])
    components: Dict[str, ComponentHealth]
