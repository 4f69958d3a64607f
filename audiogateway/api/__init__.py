"""API endpoints."""

from audiogateway.api import health, search, stream, ui

__all__ = [
    "health",
    "search",
    "stream",
    "ui",
]
