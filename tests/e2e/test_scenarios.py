"""End-to-end scenarios driven through the HTTP surface.

Mirrors are simulated with ``httpx.MockTransport``; nothing leaves the process.
"""

import asyncio
from pathlib import Path
from unittest.mock import patch

import httpx
import pytest

from audiogateway.main import create_app

pytestmark = pytest.mark.e2e

PAYLOAD = b"abcdefghij"


def invidious_audio(url: str):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "adaptiveFormats": [
                    {"type": 'audio/webm; codecs="opus"', "url": url, "bitrate": "160000"}
                ]
            },
        )

    return handler


def serve_bytes(content: bytes):
    return lambda request: httpx.Response(200, content=content)


def cache_files(cache_dir: Path):
    return sorted(p.name for p in cache_dir.iterdir() if not p.name.startswith("."))


class TestStreamFromInvidious:
    """Cold fetch through Invidious, then range reads from the cache"""

    def test_cold_then_range(self, make_client, mirrors, cache_dir: Path) -> None:
        """Test cold fetch through Invidious followed by a cached range read."""
        mirrors.route("inv-a.test", invidious_audio("https://cdn.test/X"))
        mirrors.route("cdn.test", serve_bytes(PAYLOAD))
        client = make_client()

        response = client.get("/stream", params={"videoId": "X"})

        assert response.status_code == 200
        assert response.content == PAYLOAD
        assert response.headers["content-type"] == "audio/mpeg"
        assert response.headers["accept-ranges"] == "bytes"
        assert response.headers["content-length"] == "10"
        assert (cache_dir / "X.mp3").read_bytes() == PAYLOAD
        assert cache_files(cache_dir) == ["X.mp3"]

        ranged = client.get("/stream", params={"videoId": "X"}, headers={"Range": "bytes=3-6"})

        assert ranged.status_code == 206
        assert ranged.content == b"defg"
        assert ranged.headers["content-range"] == "bytes 3-6/10"
        assert ranged.headers["content-length"] == "4"

    def test_second_request_uses_no_upstream(self, make_client, mirrors) -> None:
        """Test that a cached entry is served without contacting any mirror."""
        mirrors.route("inv-a.test", invidious_audio("https://cdn.test/X"))
        mirrors.route("cdn.test", serve_bytes(PAYLOAD))
        client = make_client()

        first = client.get("/stream", params={"videoId": "X"})
        upstream_calls = len(mirrors.requests)
        second = client.get("/stream", params={"videoId": "X"})

        assert first.content == second.content == PAYLOAD
        assert len(mirrors.requests) == upstream_calls

    def test_range_boundaries(self, make_client, mirrors, cache_dir: Path) -> None:
        """Test single-byte, open-ended, past-end and malformed ranges."""
        cache_dir.mkdir(parents=True)
        (cache_dir / "X.mp3").write_bytes(PAYLOAD)
        client = make_client()

        one = client.get("/stream", params={"videoId": "X"}, headers={"Range": "bytes=0-0"})
        assert one.status_code == 206
        assert one.content == b"a"

        tail = client.get("/stream", params={"videoId": "X"}, headers={"Range": "bytes=6-"})
        assert tail.status_code == 206
        assert tail.content == b"ghij"
        assert tail.headers["content-range"] == "bytes 6-9/10"

        past = client.get("/stream", params={"videoId": "X"}, headers={"Range": "bytes=10-"})
        assert past.status_code == 416
        assert past.headers["content-range"] == "bytes */10"

        garbage = client.get("/stream", params={"videoId": "X"}, headers={"Range": "lines=1-2"})
        assert garbage.status_code == 200
        assert garbage.content == PAYLOAD

        assert mirrors.requests == []

    def test_cold_request_ignores_range(self, make_client, mirrors) -> None:
        """Test that a cold request returns the whole body despite a Range header."""
        mirrors.route("inv-a.test", invidious_audio("https://cdn.test/X"))
        mirrors.route("cdn.test", serve_bytes(PAYLOAD))
        client = make_client()

        response = client.get("/stream", params={"videoId": "X"}, headers={"Range": "bytes=3-6"})

        assert response.status_code == 200
        assert response.content == PAYLOAD


class TestStreamFromCobalt:
    """Cobalt instance fallback"""

    def test_error_then_tunnel(self, make_client, mirrors, cache_dir: Path) -> None:
        """Test that a Cobalt error moves on to the next instance."""
        mirrors.route(
            "cobalt-a.test",
            lambda r: httpx.Response(
                400, json={"status": "error", "error": {"code": "error.api.fetch.fail"}}
            ),
        )
        mirrors.route(
            "cobalt-b.test",
            lambda r: httpx.Response(200, json={"status": "tunnel", "url": "https://tunnel.test/U"}),
        )
        mirrors.route("tunnel.test", serve_bytes(b"XY"))
        client = make_client(
            {"cobalt_instances": ["https://cobalt-a.test", "https://cobalt-b.test"]}
        )

        with patch("audiogateway.providers.cobalt.logger") as cobalt_logger, patch(
            "audiogateway.providers.base.logger"
        ) as base_logger:
            response = client.get("/stream", params={"videoId": "Y"})

        assert response.status_code == 200
        assert response.content == b"XY"
        assert [c.args[0] for c in cobalt_logger.warning.call_args_list] == ["cobalt_error"]
        successes = [
            c.kwargs
            for c in base_logger.info.call_args_list
            if c.args[0] == "mirror_instance_succeeded"
        ]
        assert successes == [
            {"strategy": "cobalt", "operation": "find_audio", "instance": "https://cobalt-b.test"}
        ]
        assert cache_files(cache_dir) == ["Y.mp3"]
        assert not any(r.url.host == "inv-a.test" for r in mirrors.requests)


class TestStreamFailures:
    """Total failure leaves nothing behind"""

    def test_all_strategies_fail(self, make_client, cache_dir: Path) -> None:
        """Test that total failure returns 500 and caches nothing."""
        client = make_client({"cobalt_instances": ["https://cobalt-a.test"]})

        response = client.get("/stream", params={"videoId": "Z"})

        assert response.status_code == 500
        body = response.json()
        assert body["error"] == "Stream failed"
        assert isinstance(body["details"], str) and body["details"]
        assert not (cache_dir / "Z.mp3").exists()
        assert not (cache_dir / "Z.download").exists()

    @pytest.mark.parametrize("status_code", [404, 500])
    def test_failed_download_leaves_no_temp(
        self, make_client, mirrors, cache_dir: Path, status_code: int
    ) -> None:
        """Test that a failed download leaves no temp file behind."""
        mirrors.route("inv-a.test", invidious_audio("https://cdn.test/Z"))
        mirrors.route("cdn.test", lambda r: httpx.Response(status_code, content=b"partial?"))
        mirrors.route("piped-a.test", lambda r: httpx.Response(200, text="<html>"))
        client = make_client()

        response = client.get("/stream", params={"videoId": "Z"})

        assert response.status_code == 500
        assert cache_files(cache_dir) == []

    def test_empty_body_falls_back_to_piped(self, make_client, mirrors, cache_dir: Path) -> None:
        """Test that an empty audio body is skipped and never cached."""
        mirrors.route("inv-a.test", invidious_audio("https://cdn.test/E"))
        mirrors.route("cdn.test", serve_bytes(b""))
        mirrors.route(
            "piped-a.test",
            lambda r: httpx.Response(
                200,
                json={
                    "audioStreams": [
                        {
                            "url": "https://piped-cdn.test/E",
                            "mimeType": "audio/mp4",
                            "bitrate": 128000,
                        }
                    ]
                },
            ),
        )
        mirrors.route("piped-cdn.test", serve_bytes(PAYLOAD))
        client = make_client()

        response = client.get("/stream", params={"videoId": "E"})

        assert response.status_code == 200
        assert response.content == PAYLOAD
        assert (cache_dir / "E.mp3").read_bytes() == PAYLOAD
        assert cache_files(cache_dir) == ["E.mp3"]

        ranged = client.get("/stream", params={"videoId": "E"}, headers={"Range": "bytes=0-"})
        assert ranged.status_code == 206
        assert ranged.content == PAYLOAD

    def test_empty_body_everywhere_caches_nothing(
        self, make_client, mirrors, cache_dir: Path
    ) -> None:
        """Test that a chain of empty bodies fails without a zero-byte entry."""
        mirrors.route("inv-a.test", invidious_audio("https://cdn.test/E"))
        mirrors.route("cdn.test", serve_bytes(b""))
        client = make_client()

        response = client.get("/stream", params={"videoId": "E"})

        assert response.status_code == 500
        assert not (cache_dir / "E.mp3").exists()
        assert cache_files(cache_dir) == []

    @pytest.mark.parametrize("params", [{}, {"videoId": ""}, {"videoId": "   "}])
    def test_missing_video_id(self, make_client, mirrors, params) -> None:
        """Test missing videoId returns 400 without upstream calls."""
        client = make_client()

        response = client.get("/stream", params=params)

        assert response.status_code == 400
        assert response.json() == {"error": 'Query parameter "videoId" is required'}
        assert mirrors.requests == []

    def test_invalid_video_id(self, make_client, mirrors) -> None:
        """Test that an unsafe videoId is rejected."""
        client = make_client()

        response = client.get("/stream", params={"videoId": "../../etc/passwd"})

        assert response.status_code == 400
        assert mirrors.requests == []


class TestSearch:
    """Search through the mirror chain"""

    def test_invidious_result(self, make_client, mirrors) -> None:
        """Test search results from Invidious."""
        mirrors.route(
            "inv-a.test",
            lambda r: httpx.Response(
                200,
                json=[
                    {
                        "type": "video",
                        "videoId": "abc",
                        "title": "T",
                        "lengthSeconds": 65,
                        "author": "A",
                        "videoThumbnails": [{"url": "https://t/x"}],
                    }
                ],
            ),
        )
        client = make_client()

        response = client.get("/search", params={"q": "test"})

        assert response.status_code == 200
        assert response.json() == [
            {
                "id": "abc",
                "title": "T",
                "timestamp": "1:05",
                "duration": 65,
                "thumbnail": "https://t/x",
                "author": "A",
            }
        ]
        assert not any(r.url.host == "piped-a.test" for r in mirrors.requests)

    def test_empty_invidious_falls_back_to_piped(self, make_client, mirrors) -> None:
        """Test that empty Invidious results fall back to Piped."""
        mirrors.route("inv-a.test", lambda r: httpx.Response(200, json=[]))
        mirrors.route(
            "piped-a.test",
            lambda r: httpx.Response(
                200,
                json={
                    "items": [
                        {"type": "stream", "url": "/watch?v=p1", "title": "Piped", "duration": 5}
                    ]
                },
            ),
        )
        client = make_client()

        response = client.get("/search", params={"q": "test"})

        assert [v["id"] for v in response.json()] == ["p1"]

    def test_every_strategy_empty_returns_empty_list(self, make_client) -> None:
        """Test that an exhausted search chain returns an empty list."""
        client = make_client()

        response = client.get("/search", params={"q": "nothing"})

        assert response.status_code == 200
        assert response.json() == []

    @pytest.mark.parametrize("params", [{"q": ""}, {}])
    def test_empty_query(self, make_client, params) -> None:
        """Test empty query returns 400."""
        client = make_client()

        response = client.get("/search", params=params)

        assert response.status_code == 400
        assert response.json() == {"error": 'Query parameter "q" is required'}


class TestConcurrentStreams:
    """Concurrent cold requests for the same id"""

    @pytest.mark.asyncio
    async def test_slow_mirror_two_clients(self, mirrors, write_config, cache_dir: Path) -> None:
        """Test that concurrent cold requests share one download."""
        async def slow_invidious(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(0.5)
            return invidious_audio("https://cdn.test/W")(request)

        async def slow_cdn(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(0.5)
            return httpx.Response(200, content=PAYLOAD)

        mirrors.route("inv-a.test", slow_invidious)
        mirrors.route("cdn.test", slow_cdn)
        write_config()
        app = create_app(http_transport=mirrors.transport())

        async with app.router.lifespan_context(app):
            transport = httpx.ASGITransport(app=app)
            async with httpx.AsyncClient(transport=transport, base_url="http://gateway") as client:
                first, second = await asyncio.gather(
                    client.get("/stream", params={"videoId": "W"}),
                    client.get("/stream", params={"videoId": "W"}),
                )

        assert first.status_code == second.status_code == 200
        assert first.content == second.content == PAYLOAD
        assert cache_files(cache_dir) == ["W.mp3"]
        assert sum(1 for r in mirrors.requests if r.url.host == "cdn.test") == 1
