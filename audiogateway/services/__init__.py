"""Service layer implementations."""

from audiogateway.services.cache import (
    ByteRange,
    CachedAudio,
    CacheStore,
    parse_range_header,
)
from audiogateway.services.credentials import (
    CredentialService,
    ExtractionCredentials,
)

__all__ = [
    # Cache
    "ByteRange",
    "CachedAudio",
    "CacheStore",
    "parse_range_header",
    # Credentials
    "CredentialService",
    "ExtractionCredentials",
]
