"""FastAPI application entry point.

This module assembles all components and creates the main application.
"""

import asyncio
import sys
import threading
from contextlib import asynccontextmanager
from pathlib import Path
from types import TracebackType
from typing import Any, AsyncGenerator, Dict, Optional, Type

import httpx
import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from audiogateway import __version__
from audiogateway.api import health, search, stream, ui
from audiogateway.core.config import Config, ConfigService, ExtractionConfig, ServerConfig
from audiogateway.core.errors import APIError, global_exception_handler
from audiogateway.core.http import HttpClient
from audiogateway.core.logging import clear_request_id, configure_logging, set_request_id
from audiogateway.providers.base import Strategy
from audiogateway.providers.cobalt import CobaltProvider
from audiogateway.providers.invidious import InvidiousProvider
from audiogateway.providers.piped import PipedProvider
from audiogateway.providers.runner import StrategyRunner
from audiogateway.providers.ytdlp import YtDlpProvider
from audiogateway.services.audio_service import AudioService
from audiogateway.services.cache import CacheStore
from audiogateway.services.credentials import CredentialService

logger = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Bind a request id to every log line of a request and echo it back."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = set_request_id(request.headers.get(REQUEST_ID_HEADER))
        try:
            response = await call_next(request)
        finally:
            clear_request_id()
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


# Global service instances
_config: Config | None = None
_http_client: HttpClient | None = None
_strategy_runner: StrategyRunner | None = None
_audio_service: AudioService | None = None


def get_config() -> Config:
    """Get the loaded configuration."""
    if _config is None:
        raise RuntimeError("Configuration not loaded")
    return _config


def get_strategy_runner() -> StrategyRunner:
    """Get the global strategy runner instance."""
    if _strategy_runner is None:
        raise RuntimeError("Strategy runner not configured")
    return _strategy_runner


def get_audio_service() -> AudioService:
    """Get the global audio service instance."""
    if _audio_service is None:
        raise RuntimeError("Audio service not configured")
    return _audio_service


def get_extraction_config() -> ExtractionConfig:
    return get_config().extraction


def get_static_dir() -> Path:
    return Path(get_config().server.static_dir)


def build_strategy_runner(
    config: Config, http: HttpClient, credentials: CredentialService
) -> StrategyRunner:
    """Instantiate every provider and wire them into a runner in configured order."""
    providers = [
        InvidiousProvider(http, config.mirrors.invidious_instances),
        PipedProvider(http, config.mirrors.piped_instances),
        CobaltProvider(http, config.mirrors.cobalt_instances, timeout=config.timeouts.cobalt),
        YtDlpProvider(config.extraction, credentials, timeout=config.timeouts.extraction),
    ]
    strategies: Dict[str, Strategy] = {p.name: p.as_strategy() for p in providers}
    return StrategyRunner(
        strategies,
        search_order=config.mirrors.search_order,
        fetch_order=config.mirrors.fetch_order,
    )


def _log_uncaught(
    exc_type: Type[BaseException],
    exc_value: BaseException,
    exc_tb: Optional[TracebackType],
    source: str,
) -> None:
    logger.error(
        "uncaught_exception",
        source=source,
        error_type=exc_type.__name__,
        error=str(exc_value),
        exc_info=(exc_type, exc_value, exc_tb),
    )


def _sys_excepthook(
    exc_type: Type[BaseException], exc_value: BaseException, exc_tb: Optional[TracebackType]
) -> None:
    if issubclass(exc_type, KeyboardInterrupt):
        sys.__excepthook__(exc_type, exc_value, exc_tb)
        return
    _log_uncaught(exc_type, exc_value, exc_tb, "main_thread")


def _threading_excepthook(args: threading.ExceptHookArgs) -> None:
    if args.exc_value is None:
        return
    thread = args.thread.name if args.thread else "unknown"
    _log_uncaught(args.exc_type, args.exc_value, args.exc_traceback, f"thread:{thread}")


def _loop_exception_handler(loop: asyncio.AbstractEventLoop, context: Dict[str, Any]) -> None:
    exc = context.get("exception")
    if exc is None:
        logger.error("uncaught_exception", source="event_loop", error=context.get("message"))
        return
    _log_uncaught(type(exc), exc, exc.__traceback__, "event_loop")


def install_uncaught_handlers(loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
    """Route uncaught errors to the log instead of letting them end the process."""
    sys.excepthook = _sys_excepthook
    threading.excepthook = _threading_excepthook
    if loop is not None:
        loop.set_exception_handler(_loop_exception_handler)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup and shutdown."""
    global _config, _http_client, _strategy_runner, _audio_service

    # Load configuration
    config = ConfigService().load()
    _config = config

    # Configure logging
    configure_logging(config.logging.level, config.logging.format)
    install_uncaught_handlers(asyncio.get_running_loop())

    logger.info("application_starting", version=__version__)

    # Cache directory must be usable before anything is served
    cache = CacheStore(config.cache.cache_dir)
    cache.initialize()

    http_client = HttpClient(
        user_agent=config.extraction.user_agent,
        metadata_timeout=config.timeouts.metadata,
        post_timeout=config.timeouts.cobalt,
        download_timeout=config.timeouts.download,
        transport=getattr(app.state, "http_transport", None),
    )

    credentials = CredentialService(cache.cache_dir)
    runner = build_strategy_runner(config, http_client, credentials)
    audio_service = AudioService(cache, runner)

    _http_client, _strategy_runner, _audio_service = http_client, runner, audio_service

    logger.info(
        "gateway_listening",
        url=f"http://{config.server.host}:{config.server.port}",
        cache_dir=str(cache.cache_dir),
        strategies=runner.list_strategies(),
        version=__version__,
    )

    yield

    # Shutdown
    logger.info("application_shutting_down")

    await audio_service.close()
    await http_client.aclose()

    if _audio_service is audio_service:
        _audio_service = None
        _strategy_runner = None
        _http_client = None

    logger.info("application_shutdown_complete")


def create_app(http_transport: Optional[httpx.AsyncBaseTransport] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        http_transport: Optional transport for the upstream HTTP client
    """
    app = FastAPI(
        title="Audio Gateway",
        description="Fetch-and-cache audio gateway over public video mirrors",
        version=__version__,
        docs_url="/docs",
        redoc_url=None,
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.http_transport = http_transport

    # Default ["*"]; override via APP_SERVER_CORS_ORIGINS
    server_config = ServerConfig()
    app.add_middleware(
        CORSMiddleware,
        allow_origins=server_config.cors_origins,
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["Content-Range", "Accept-Ranges", "Content-Length", REQUEST_ID_HEADER],
    )
    app.add_middleware(RequestIdMiddleware)

    # Register global exception handlers
    app.add_exception_handler(Exception, global_exception_handler)
    app.add_exception_handler(APIError, global_exception_handler)
    app.add_exception_handler(StarletteHTTPException, global_exception_handler)

    # Override dependency injection for routers
    app.dependency_overrides[search.get_strategy_runner] = get_strategy_runner
    app.dependency_overrides[stream.get_audio_service] = get_audio_service
    app.dependency_overrides[health.get_audio_service] = get_audio_service
    app.dependency_overrides[health.get_extraction_config] = get_extraction_config
    app.dependency_overrides[ui.get_static_dir] = get_static_dir

    # Register routers; the UI catch-all must stay last
    app.include_router(health.router)
    app.include_router(search.router)
    app.include_router(stream.router)
    app.include_router(ui.router)

    return app


# Create the application instance
app = create_app()


def run() -> None:
    """Console entry point: serve the application with uvicorn."""
    import uvicorn

    install_uncaught_handlers()
    config = ConfigService().load()
    uvicorn.run(app, host=config.server.host, port=config.server.port)


if __name__ == "__main__":
    run()
