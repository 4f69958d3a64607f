"""Centralized error handling for the HTTP surface.

Every error response body has the shape ``{"error": <short>, "details"?: <string>}``
that the browser client expects.
"""

from typing import Any, Dict, Optional, Type

import structlog
from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException
from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_416_RANGE_NOT_SATISFIABLE,
    HTTP_500_INTERNAL_SERVER_ERROR,
)

from audiogateway.core.exceptions import (
    CacheError,
    DownloadFailedError,
    GatewayError,
    InputError,
    RangeNotSatisfiableError,
)

logger = structlog.get_logger(__name__)


# Exception type to HTTP status mapping
# Order matters: subclasses must come before their base classes
EXCEPTION_TO_STATUS: Dict[Type[Exception], int] = {
    RangeNotSatisfiableError: HTTP_416_RANGE_NOT_SATISFIABLE,
    InputError: HTTP_400_BAD_REQUEST,
    CacheError: HTTP_500_INTERNAL_SERVER_ERROR,
    DownloadFailedError: HTTP_500_INTERNAL_SERVER_ERROR,
    # GatewayError must be last (after its subclasses)
    GatewayError: HTTP_500_INTERNAL_SERVER_ERROR,
}


class APIError(Exception):
    """Error that carries its own status code and client-facing body."""

    def __init__(
        self,
        status_code: int,
        error: str,
        details: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        """
        Initialize an API error.

        Args:
            status_code: HTTP status to respond with
            error: Short, stable error string
            details: Optional human-readable details
            headers: Optional extra response headers
        """
        self.status_code = status_code
        self.error = error
        self.details = details
        self.headers = headers
        super().__init__(error)

    @classmethod
    def from_exception(cls, exc: Exception, error: str) -> "APIError":
        """
        Wrap a gateway exception, using ``error`` as the short message for 5xx.

        Client errors keep their own message as the short error.
        """
        status_code = status_for(exc)
        if status_code < 500:
            return cls(status_code, str(exc))
        return cls(status_code, error, details=describe(exc))


def status_for(exc: Exception) -> int:
    for exc_type, status_code in EXCEPTION_TO_STATUS.items():
        if isinstance(exc, exc_type):
            return status_code
    return HTTP_500_INTERNAL_SERVER_ERROR


def describe(exc: Exception) -> str:
    """Render an exception as the ``details`` string of an error body."""
    message = str(exc) or type(exc).__name__
    extra = getattr(exc, "details", None)
    if extra:
        return f"{message}: {extra}"
    return message


def error_body(error: str, details: Optional[str] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"error": error}
    if details:
        body["details"] = details
    return body


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Convert any exception to a JSON error response.

    Args:
        request: The request being handled
        exc: The exception that was raised

    Returns:
        JSONResponse with the error body and status code
    """
    headers: Optional[Dict[str, str]] = None

    if isinstance(exc, APIError):
        status_code = exc.status_code
        body = error_body(exc.error, exc.details)
        headers = exc.headers
        logger.warning(
            "api_error",
            status_code=status_code,
            error=exc.error,
            details=exc.details,
            path=request.url.path,
        )

    elif isinstance(exc, HTTPException):
        status_code = exc.status_code
        if isinstance(exc.detail, dict) and "error" in exc.detail:
            body = exc.detail
        else:
            body = error_body(str(exc.detail) if exc.detail else "Request failed")
        headers = getattr(exc, "headers", None)
        logger.warning("http_exception", status_code=status_code, path=request.url.path)

    elif isinstance(exc, GatewayError):
        status_code = status_for(exc)
        body = error_body(str(exc)) if status_code < 500 else error_body(
            "Request failed", describe(exc)
        )
        logger.warning(
            "gateway_error",
            status_code=status_code,
            error_type=type(exc).__name__,
            error=str(exc),
            path=request.url.path,
        )

    else:
        status_code = HTTP_500_INTERNAL_SERVER_ERROR
        body = error_body("Internal server error", type(exc).__name__)
        logger.error(
            "unhandled_exception",
            error_type=type(exc).__name__,
            error=str(exc),
            path=request.url.path,
            exc_info=True,
        )

    return JSONResponse(status_code=status_code, content=body, headers=headers)
