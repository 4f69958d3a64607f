"""Search and audio-fetch providers."""

from audiogateway.core.exceptions import (
    AuthRequiredError,
    CacheError,
    DownloadFailedError,
    ExtractionError,
    GatewayError,
    InputError,
    NetworkError,
    ProtocolError,
    RangeNotSatisfiableError,
    RequestTimeoutError,
    UpstreamError,
)
from audiogateway.providers.base import MirrorAdapter, Strategy
from audiogateway.providers.cobalt import CobaltProvider
from audiogateway.providers.invidious import InvidiousProvider
from audiogateway.providers.piped import PipedProvider
from audiogateway.providers.runner import RunResult, StrategyAttempt, StrategyRunner
from audiogateway.providers.ytdlp import YtDlpProvider

__all__ = [
    "MirrorAdapter",
    "Strategy",
    "StrategyRunner",
    "StrategyAttempt",
    "RunResult",
    "InvidiousProvider",
    "PipedProvider",
    "CobaltProvider",
    "YtDlpProvider",
    "GatewayError",
    "InputError",
    "UpstreamError",
    "NetworkError",
    "RequestTimeoutError",
    "ProtocolError",
    "ExtractionError",
    "AuthRequiredError",
    "CacheError",
    "DownloadFailedError",
    "RangeNotSatisfiableError",
]
