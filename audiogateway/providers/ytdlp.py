"""Extraction fallback backed by the yt-dlp command-line tool."""

import asyncio
import contextlib
import json
from pathlib import Path
from typing import List, Optional

import structlog

from audiogateway.core.config import ExtractionConfig
from audiogateway.core.exceptions import AuthRequiredError, ExtractionError
from audiogateway.core.logging import redact_command
from audiogateway.models.video import MAX_SEARCH_RESULTS, VideoSummary, watch_url
from audiogateway.providers.base import Strategy
from audiogateway.services.credentials import CredentialService, ExtractionCredentials

logger = structlog.get_logger(__name__)

# Substrings of the tool's stderr that mean the upstream demanded a signed-in session
AUTH_REQUIRED_MARKERS = (
    "Sign in to confirm",
    "confirm you're not a bot",
    "This video requires login",
)


class YtDlpProvider:
    """Last-resort provider that runs the extraction tool locally.

    It is the slowest path and the only one that uses credential material.
    """

    name = "ytdlp"

    def __init__(
        self,
        config: ExtractionConfig,
        credentials: CredentialService,
        timeout: Optional[float] = None,
    ):
        """
        Initialize the extraction provider.

        Args:
            config: Extraction tool configuration
            credentials: Resolves cookie/token material per invocation
            timeout: Deadline for a single tool run, in seconds
        """
        self.config = config
        self.credentials = credentials
        self.timeout = timeout

    def as_strategy(self) -> Strategy:
        return Strategy(name=self.name, search=self.search, fetch_audio=self.fetch_audio)

    def build_download_command(
        self, video_id: str, dest: Path, credentials: ExtractionCredentials
    ) -> List[str]:
        """Build the command that downloads the best audio of ``video_id`` to ``dest``."""
        cmd = [
            self.config.binary,
            "--no-playlist",
            "--no-warnings",
            "--no-check-certificates",
            "--no-part",
            "--force-overwrites",
            "-f",
            self.config.format,
            "--add-header",
            f"referer:{self.config.referer}",
            "--user-agent",
            self.config.user_agent,
            "-o",
            str(dest),
        ]
        cmd.extend(self._credential_args(credentials))
        cmd.append(watch_url(video_id))
        return cmd

    def build_search_command(self, query: str, credentials: ExtractionCredentials) -> List[str]:
        cmd = [
            self.config.binary,
            "--dump-json",
            "--flat-playlist",
            "--no-warnings",
            "--user-agent",
            self.config.user_agent,
        ]
        cmd.extend(self._credential_args(credentials))
        cmd.append(f"ytsearch{MAX_SEARCH_RESULTS}:{query}")
        return cmd

    async def fetch_audio(self, video_id: str, dest: Path) -> Optional[Path]:
        """
        Download the best available audio straight to ``dest``.

        Raises:
            ExtractionError: If the tool fails
            AuthRequiredError: If the upstream asked for a signed-in session
        """
        credentials = await self.credentials.resolve()
        cmd = self.build_download_command(video_id, dest, credentials)

        logger.info("extraction_download_started", video_id=video_id)
        await self._run(cmd)
        return dest

    async def search(self, query: str) -> List[VideoSummary]:
        credentials = await self.credentials.resolve()
        stdout = await self._run(self.build_search_command(query, credentials))

        videos: List[VideoSummary] = []
        for line in stdout.decode(errors="replace").splitlines():
            line = line.strip()
            if not line:
                continue
            try:
                entry = json.loads(line)
            except json.JSONDecodeError:
                logger.debug("extraction_search_line_skipped", line=line[:200])
                continue

            video_id = entry.get("id")
            title = entry.get("title")
            if not video_id or not title:
                continue

            thumbnails = entry.get("thumbnails") or []
            thumbnail = thumbnails[-1].get("url") if thumbnails else entry.get("thumbnail")
            videos.append(
                VideoSummary.build(
                    video_id=video_id,
                    title=title,
                    duration=entry.get("duration"),
                    thumbnail=thumbnail,
                    author=entry.get("channel") or entry.get("uploader"),
                )
            )
            if len(videos) >= MAX_SEARCH_RESULTS:
                break

        return videos

    @staticmethod
    def _credential_args(credentials: ExtractionCredentials) -> List[str]:
        args: List[str] = []
        if credentials.cookie_file is not None:
            args.extend(["--cookies", str(credentials.cookie_file)])
        if credentials.extractor_args is not None:
            args.extend(["--extractor-args", credentials.extractor_args])
        return args

    async def _run(self, cmd: List[str]) -> bytes:
        """
        Run the tool and return its stdout.

        Raises:
            ExtractionError: On a missing binary, timeout, or non-zero exit
            AuthRequiredError: When stderr carries a sign-in marker
        """
        logger.debug("extraction_command", command=redact_command(cmd))

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            logger.error("extraction_tool_missing", binary=cmd[0])
            raise ExtractionError(f"{cmd[0]} is not installed or not in PATH") from e

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            process.kill()
            await process.wait()
            raise ExtractionError(f"{cmd[0]} timed out after {self.timeout}s") from e
        except asyncio.CancelledError:
            if process.returncode is None:
                process.kill()
                with contextlib.suppress(asyncio.CancelledError):
                    await asyncio.shield(process.wait())
            raise

        if process.returncode != 0:
            message = stderr.decode(errors="replace").strip() or "Unknown error"
            if any(marker in message for marker in AUTH_REQUIRED_MARKERS):
                logger.error(
                    "extraction_auth_required",
                    hint="Upstream requires sign-in; supply YOUTUBE_COOKIES "
                    "or YOUTUBE_PO_TOKEN and YOUTUBE_VISITOR_DATA",
                )
                raise AuthRequiredError(message)
            raise ExtractionError(message)

        return stdout
