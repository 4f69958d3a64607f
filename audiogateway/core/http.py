"""HTTP client helpers for talking to mirror instances.

Every call carries an explicit deadline: mirrors tend to stall rather than
fail, and a stalled mirror must not turn into an unbounded request.
"""

import asyncio
from pathlib import Path
from typing import Any, Awaitable, Dict, Optional, TypeVar

import anyio
import httpx
import structlog

from audiogateway.core.config import DEFAULT_USER_AGENT
from audiogateway.core.exceptions import (
    NetworkError,
    ProtocolError,
    RequestTimeoutError,
    UpstreamError,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class HttpClient:
    """Thin wrapper over ``httpx.AsyncClient`` with the gateway's error taxonomy.

    Redirects are followed by hand so each hop is visible and bounded.
    """

    MAX_REDIRECTS = 5
    CHUNK_SIZE = 64 * 1024

    def __init__(
        self,
        user_agent: str = DEFAULT_USER_AGENT,
        metadata_timeout: float = 10.0,
        post_timeout: float = 15.0,
        download_timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            user_agent: User-Agent header sent on every request
            metadata_timeout: Deadline for get_json, in seconds
            post_timeout: Deadline for post_json, in seconds
            download_timeout: Deadline for download, in seconds
            transport: Optional transport override (tests use httpx.MockTransport)
        """
        self.metadata_timeout = metadata_timeout
        self.post_timeout = post_timeout
        self.download_timeout = download_timeout
        self._client = httpx.AsyncClient(
            headers={"User-Agent": user_agent},
            follow_redirects=False,
            timeout=httpx.Timeout(download_timeout),
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "HttpClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def get_json(
        self, url: str, params: Optional[Dict[str, Any]] = None, timeout: Optional[float] = None
    ) -> Any:
        """
        GET a URL and decode the body as JSON, following redirects.

        Raises:
            NetworkError: On transport failure
            RequestTimeoutError: When the deadline passes
            UpstreamError: On a status >= 400 or too many redirects
            ProtocolError: If the body is not valid JSON
        """
        deadline = timeout or self.metadata_timeout
        return await self._with_deadline(self._get_json(url, params, 0), deadline, url)

    async def post_json(
        self, url: str, payload: Dict[str, Any], timeout: Optional[float] = None
    ) -> Any:
        """POST a JSON body and decode the JSON response. Same errors as get_json."""
        deadline = timeout or self.post_timeout
        return await self._with_deadline(self._post_json(url, payload), deadline, url)

    async def download(self, url: str, dest: Path, timeout: Optional[float] = None) -> int:
        """
        Stream a response body into ``dest``.

        Returns only after the file is fully written and closed. On any
        failure, including cancellation, ``dest`` is removed before the
        error propagates.

        Returns:
            Number of bytes written
        """
        deadline = timeout or self.download_timeout
        try:
            written = await self._with_deadline(self._download(url, dest, 0), deadline, url)
        except BaseException:
            await anyio.Path(dest).unlink(missing_ok=True)
            raise

        logger.debug("download_completed", url=url, dest=str(dest), bytes=written)
        return written

    async def _get_json(self, url: str, params: Optional[Dict[str, Any]], hops: int) -> Any:
        try:
            response = await self._client.get(url, params=params)
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(f"Timed out requesting {url}: {e}") from e
        except httpx.HTTPError as e:
            raise NetworkError(f"Request to {url} failed: {e}") from e

        if response.is_redirect:
            target = self._redirect_target(response, hops)
            return await self._get_json(target, None, hops + 1)

        return self._decode(response)

    async def _post_json(self, url: str, payload: Dict[str, Any]) -> Any:
        try:
            response = await self._client.post(
                url, json=payload, headers={"Accept": "application/json"}
            )
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(f"Timed out posting to {url}: {e}") from e
        except httpx.HTTPError as e:
            raise NetworkError(f"Request to {url} failed: {e}") from e

        return self._decode(response)

    async def _download(self, url: str, dest: Path, hops: int) -> int:
        target: Optional[str] = None
        written = 0
        try:
            async with self._client.stream("GET", url) as response:
                if response.is_redirect:
                    target = self._redirect_target(response, hops)
                elif not response.is_success:
                    raise UpstreamError(
                        f"HTTP {response.status_code} downloading {url}",
                        status_code=response.status_code,
                    )
                else:
                    async with await anyio.open_file(dest, "wb") as fh:
                        async for chunk in response.aiter_bytes(self.CHUNK_SIZE):
                            await fh.write(chunk)
                            written += len(chunk)
                    if written == 0:
                        raise UpstreamError(
                            f"Empty body downloading {url}", status_code=response.status_code
                        )
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(f"Timed out downloading {url}: {e}") from e
        except httpx.HTTPError as e:
            raise NetworkError(f"Download from {url} failed: {e}") from e

        if target is not None:
            return await self._download(target, dest, hops + 1)
        return written

    def _redirect_target(self, response: httpx.Response, hops: int) -> str:
        if hops >= self.MAX_REDIRECTS:
            raise UpstreamError(
                f"Too many redirects from {response.request.url}",
                status_code=response.status_code,
            )
        target = str(response.url.join(response.headers["location"]))
        logger.debug("following_redirect", source=str(response.url), target=target)
        return target

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        payload: Any = None
        try:
            payload = response.json()
        except ValueError as e:
            if response.is_success:
                raise ProtocolError(f"Invalid JSON from {response.url}: {e}") from e

        if not response.is_success:
            raise UpstreamError(
                f"HTTP {response.status_code} from {response.url}",
                status_code=response.status_code,
                payload=payload,
            )
        return payload

    @staticmethod
    async def _with_deadline(operation: Awaitable[T], timeout: float, url: str) -> T:
        try:
            return await asyncio.wait_for(operation, timeout=timeout)
        except asyncio.TimeoutError as e:
            raise RequestTimeoutError(f"Deadline of {timeout}s exceeded for {url}") from e
