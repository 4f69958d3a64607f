"""Serves the browser client's static bundle.

Any GET that no API route claims is answered from the bundle directory,
falling back to ``index.html`` so client-side routes resolve.
"""

from pathlib import Path

import structlog
from fastapi import APIRouter, Depends, status
from fastapi.responses import FileResponse

from audiogateway.core.errors import APIError

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["ui"])

INDEX_FILE = "index.html"


# Dependency placeholder for the bundle directory
async def get_static_dir() -> Path:
    """Get the static bundle directory."""
    raise NotImplementedError("Static directory dependency not configured")


def resolve_asset(static_dir: Path, path: str) -> Path:
    """
    Map a request path to a file inside ``static_dir``.

    Paths that do not name a file, or that escape the directory, resolve
    to the index.

    Raises:
        APIError: 404 if there is no bundle to serve
    """
    root = static_dir.resolve()
    index = root / INDEX_FILE
    if not index.is_file():
        raise APIError(status.HTTP_404_NOT_FOUND, "Not found")

    if path:
        candidate = (root / path).resolve()
        if candidate.is_file() and candidate.is_relative_to(root):
            return candidate
    return index


@router.get("/", include_in_schema=False)
@router.get("/{path:path}", include_in_schema=False)
async def serve_ui(
    path: str = "",
    static_dir: Path = Depends(get_static_dir),  # noqa: B008
) -> FileResponse:
    """Serve a bundle asset or the index page."""
    return FileResponse(resolve_asset(static_dir, path))
