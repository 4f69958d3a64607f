"""Gateway error taxonomy.

Each class is a distinct taxon in logs (``error_type=type(exc).__name__``).
"""

from typing import Any, Optional


class GatewayError(Exception):
    """Base exception for gateway errors."""

    pass


class InputError(GatewayError):
    """Raised when a query or video id is missing or malformed."""

    pass


class UpstreamError(GatewayError):
    """Raised when a reachable provider returns a bad status or unusable payload."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        payload: Optional[Any] = None,
    ):
        self.status_code = status_code
        self.payload = payload
        super().__init__(message)


class NetworkError(GatewayError):
    """Raised on transport failures."""

    pass


class RequestTimeoutError(NetworkError):
    """Raised when an upstream call exceeds its deadline."""

    pass


class ProtocolError(GatewayError):
    """Raised when a payload is not JSON or lacks required fields."""

    pass


class ExtractionError(GatewayError):
    """Raised when the extraction tool fails."""

    pass


class AuthRequiredError(ExtractionError):
    """Raised when the upstream asks the extraction tool to sign in."""

    pass


class CacheError(GatewayError):
    """Raised when a downloaded file cannot be published to the cache."""

    pass


class DownloadFailedError(GatewayError):
    """Raised when every fetch strategy failed for a video id."""

    def __init__(self, message: str, details: Optional[str] = None):
        self.details = details
        super().__init__(message)


class RangeNotSatisfiableError(InputError):
    """Raised when a byte range starts beyond the end of a cached file."""

    def __init__(self, message: str, size: int):
        self.size = size
        super().__init__(message)
