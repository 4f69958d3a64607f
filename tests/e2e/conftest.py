"""E2E test configuration and fixtures.

These fixtures set up a gateway with:
- A temporary cache directory and YAML config file
- Mirrors simulated in-process through an ``httpx.MockTransport``
- An extraction tool binary that does not exist, so the last fallback fails fast
"""

import inspect
from pathlib import Path
from typing import Any, Callable, Dict, Generator, List, Optional

import httpx
import pytest
import yaml
from fastapi.testclient import TestClient

from audiogateway.main import create_app

Handler = Callable[[httpx.Request], Any]

MISSING_BINARY = "audiogateway-test-missing-yt-dlp"


class MirrorSim:
    """Routes upstream requests to per-host handlers and records them."""

    def __init__(self) -> None:
        self.routes: Dict[str, Handler] = {}
        self.requests: List[httpx.Request] = []

    def route(self, host: str, handler: Handler) -> None:
        self.routes[host] = handler

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get(request.url.host)
        if handler is None:
            raise httpx.ConnectError(f"no route to {request.url.host}", request=request)
        response = handler(request)
        if inspect.isawaitable(response):
            response = await response
        return response

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


@pytest.fixture
def cache_dir(tmp_path: Path) -> Path:
    return tmp_path / "cache"


@pytest.fixture
def mirrors() -> MirrorSim:
    return MirrorSim()


@pytest.fixture
def write_config(
    tmp_path: Path, cache_dir: Path, monkeypatch: pytest.MonkeyPatch
) -> Callable[..., Path]:
    """Write a config file pointing at simulated mirror hosts and select it."""

    def _write(mirror_overrides: Optional[Dict[str, Any]] = None) -> Path:
        mirrors_section: Dict[str, Any] = {
            "invidious_instances": ["https://inv-a.test"],
            "piped_instances": ["https://piped-a.test"],
            "cobalt_instances": [],
        }
        mirrors_section.update(mirror_overrides or {})
        config = {
            "cache": {"cache_dir": str(cache_dir)},
            "server": {"static_dir": str(tmp_path / "public")},
            "mirrors": mirrors_section,
            "extraction": {"binary": MISSING_BINARY},
            "logging": {"level": "WARNING"},
        }
        config_file = tmp_path / "config.yaml"
        config_file.write_text(yaml.dump(config))
        monkeypatch.setenv("APP_CONFIG_FILE", str(config_file))
        return config_file

    return _write


@pytest.fixture
def make_client(
    mirrors: MirrorSim, write_config: Callable[..., Path]
) -> Generator[Callable[..., TestClient], None, None]:
    """Build a started TestClient; every client is closed at teardown."""
    clients: List[TestClient] = []

    def _make(mirror_overrides: Optional[Dict[str, Any]] = None) -> TestClient:
        write_config(mirror_overrides)
        client = TestClient(create_app(http_transport=mirrors.transport()))
        client.__enter__()
        clients.append(client)
        return client

    yield _make

    for client in clients:
        client.__exit__(None, None, None)
