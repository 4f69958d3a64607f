"""Component checks used by the health endpoint."""

import asyncio
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


@dataclass
class CheckResult:
    """Result of a component availability check.

    Attributes:
        name: Component name (e.g., "ytdlp", "cache")
        available: Whether the component is usable
        version: Version string if the component reports one
        error: Reason the component is unavailable
    """

    name: str
    available: bool
    version: Optional[str] = None
    error: Optional[str] = None


async def check_extraction_tool(binary: str = "yt-dlp", timeout: float = 5.0) -> CheckResult:
    """Run ``<binary> --version`` and report whether it answered.

    Args:
        binary: Extraction tool executable name or path.
        timeout: Maximum time to wait for the check in seconds.

    Returns:
        CheckResult with availability status and version if available.
    """
    proc = None
    try:
        proc = await asyncio.create_subprocess_exec(
            binary,
            "--version",
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=timeout)

        if proc.returncode == 0:
            return CheckResult(name="ytdlp", available=True, version=stdout.decode().strip())

        return CheckResult(
            name="ytdlp",
            available=False,
            error=f"{binary} returned non-zero exit code",
        )
    except asyncio.TimeoutError:
        if proc:
            proc.kill()
            await proc.wait()
        return CheckResult(name="ytdlp", available=False, error=f"{binary} check timed out")
    except FileNotFoundError:
        return CheckResult(name="ytdlp", available=False, error=f"{binary} not found")
    except OSError as e:
        return CheckResult(name="ytdlp", available=False, error=str(e))


def check_cache_dir(cache_dir: Path) -> CheckResult:
    """Report whether the cache directory exists and is writable."""
    if not cache_dir.is_dir():
        return CheckResult(name="cache", available=False, error=f"{cache_dir} does not exist")
    if not os.access(cache_dir, os.W_OK):
        return CheckResult(name="cache", available=False, error=f"{cache_dir} is not writable")
    return CheckResult(name="cache", available=True)
