"""Tests for HTTP error mapping"""

import json

import pytest
from fastapi import Request
from starlette.exceptions import HTTPException

from audiogateway.core.errors import APIError, describe, global_exception_handler, status_for
from audiogateway.core.exceptions import (
    CacheError,
    DownloadFailedError,
    ExtractionError,
    InputError,
    RangeNotSatisfiableError,
)


def make_request(path: str = "/stream") -> Request:
    return Request({"type": "http", "method": "GET", "path": path, "headers": [], "query_string": b""})


def body_of(response) -> dict:
    return json.loads(response.body)


class TestStatusMapping:
    """Test exception to status code mapping"""

    @pytest.mark.parametrize(
        "exc,status_code",
        [
            (InputError("bad"), 400),
            (RangeNotSatisfiableError("past end", size=10), 416),
            (CacheError("missing"), 500),
            (DownloadFailedError("All download methods failed"), 500),
            (ExtractionError("tool"), 500),
            (ValueError("other"), 500),
        ],
    )
    def test_status_for(self, exc: Exception, status_code: int) -> None:
        """Test exception to status mapping."""
        assert status_for(exc) == status_code

    def test_describe_includes_details(self) -> None:
        """Test that describe appends the error details."""
        exc = DownloadFailedError("All download methods failed", details="timeout")

        assert describe(exc) == "All download methods failed: timeout"

    def test_describe_empty_message(self) -> None:
        """Test that describe falls back to the type name."""
        assert describe(RuntimeError()) == "RuntimeError"


class TestFromException:
    """Test wrapping gateway exceptions"""

    def test_client_error_keeps_message(self) -> None:
        """Test that client errors keep their message."""
        error = APIError.from_exception(InputError('Query parameter "videoId" is required'), "x")

        assert error.status_code == 400
        assert error.error == 'Query parameter "videoId" is required'
        assert error.details is None

    def test_server_error_uses_short_error(self) -> None:
        """Test that server errors use the short error string."""
        exc = DownloadFailedError("All download methods failed", details="HTTP 500")

        error = APIError.from_exception(exc, "Stream failed")

        assert error.status_code == 500
        assert error.error == "Stream failed"
        assert error.details == "All download methods failed: HTTP 500"


class TestGlobalExceptionHandler:
    """Test JSON error bodies"""

    @pytest.mark.asyncio
    async def test_api_error(self) -> None:
        """Test handling of APIError."""
        exc = APIError(416, "Range not satisfiable", headers={"Content-Range": "bytes */10"})

        response = await global_exception_handler(make_request(), exc)

        assert response.status_code == 416
        assert body_of(response) == {"error": "Range not satisfiable"}
        assert response.headers["content-range"] == "bytes */10"

    @pytest.mark.asyncio
    async def test_http_exception(self) -> None:
        """Test handling of Starlette HTTPException."""
        response = await global_exception_handler(make_request(), HTTPException(404, "Not Found"))

        assert response.status_code == 404
        assert body_of(response) == {"error": "Not Found"}

    @pytest.mark.asyncio
    async def test_gateway_error(self) -> None:
        """Test handling of gateway errors."""
        response = await global_exception_handler(make_request(), CacheError("disk full"))

        assert response.status_code == 500
        assert body_of(response) == {"error": "Request failed", "details": "disk full"}

    @pytest.mark.asyncio
    async def test_unexpected_error(self) -> None:
        """Test handling of unexpected exceptions."""
        response = await global_exception_handler(make_request(), KeyError("boom"))

        assert response.status_code == 500
        assert body_of(response) == {"error": "Internal server error", "details": "KeyError"}
