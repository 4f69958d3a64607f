"""Credential material for the extraction tool.

Mirror adapters never see any of this; it only shapes the extraction
tool's command line.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import anyio
import structlog

from audiogateway.core.config import CredentialsConfig

logger = structlog.get_logger(__name__)

COOKIE_FILENAME = "cookies.txt"


@dataclass
class ExtractionCredentials:
    """Resolved inputs for one extraction tool invocation."""

    cookie_file: Optional[Path] = None
    extractor_args: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return self.cookie_file is None and self.extractor_args is None


def looks_like_netscape(content: str) -> bool:
    """
    Check whether cookie content resembles a Netscape cookie export.

    Every non-comment line must have seven tab-separated fields and at
    least one such line must exist.
    """
    entries = 0
    for line in content.strip().splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        if len(line.split("\t")) != 7:
            return False
        entries += 1
    return entries > 0


class CredentialService:
    """Resolves cookie and token material from the environment per invocation."""

    def __init__(self, cache_dir: Path):
        """
        Initialize credential service.

        Args:
            cache_dir: Cache directory; the cookie file lives directly under it
        """
        self.cookie_path = Path(cache_dir) / COOKIE_FILENAME

    async def resolve(self) -> ExtractionCredentials:
        """
        Resolve credentials in precedence order.

        1. Inline cookie content is written to the cookie file, replacing it.
        2. Otherwise an existing cookie file is reused.
        3. A po_token plus visitor data become a provider extractor argument.
        4. With none of the above, log a warning and carry on.
        """
        settings = CredentialsConfig()
        credentials = ExtractionCredentials()

        if settings.youtube_cookies:
            await self._materialize_cookies(settings.youtube_cookies)
            credentials.cookie_file = self.cookie_path
        elif await anyio.Path(self.cookie_path).is_file():
            credentials.cookie_file = self.cookie_path

        if settings.youtube_po_token and settings.youtube_visitor_data:
            credentials.extractor_args = (
                f"youtube:po_token=web.gvs+{settings.youtube_po_token};"
                f"visitor_data={settings.youtube_visitor_data}"
            )

        if credentials.is_empty:
            logger.warning(
                "extraction_unauthenticated",
                hint="No cookies or po_token configured; upstream bot detection may trigger",
            )
        else:
            logger.debug(
                "extraction_credentials_resolved",
                cookie_file=str(credentials.cookie_file) if credentials.cookie_file else None,
                has_token=credentials.extractor_args is not None,
            )

        return credentials

    async def _materialize_cookies(self, content: str) -> None:
        if not looks_like_netscape(content):
            logger.warning(
                "cookie_format_suspect",
                cookie_path=str(self.cookie_path),
                hint="YOUTUBE_COOKIES should be a Netscape-format cookie export",
            )

        path = anyio.Path(self.cookie_path)
        await path.parent.mkdir(parents=True, exist_ok=True)
        if not content.endswith("\n"):
            content += "\n"
        await path.write_text(content, encoding="utf-8")
        await path.chmod(0o600)
        logger.debug("cookie_file_written", cookie_path=str(self.cookie_path), size=len(content))
