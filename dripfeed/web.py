"""FastAPI feed server for dripfeed.

Exposes:
- GET /feeds/{reading_id}   (RSS feed for one subscription)

Error responses are plain text:
- 404 "Error 404" for unknown subscriptions, dangling story ids and unmatched routes
- 500 with the I/O error description when a store cannot be read
- 500 "Error 500" for corrupt stores or inconsistent data
- 502 with the upstream failure when the chapter site is unreachable
"""

from __future__ import annotations

import asyncio
import logging
import os
import socket
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Request, Response
from fastapi.responses import PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from .config import DripfeedConfig
from .engine import ReleaseEngine
from .errors import (
    ConsistencyError,
    NotFoundError,
    StoreIOError,
    StoreParseError,
    UpstreamError,
)
from .feed import RSS_MEDIA_TYPE, render_rss
from .logging_config import get_logger
from .source import ChapterSource

logger = get_logger(__name__)

NOT_FOUND_BODY = "Error 404"
SERVER_ERROR_BODY = "Error 500"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log the first incoming request with full URL for debugging."""

    async def dispatch(self, request, call_next):
        if not getattr(request.app.state, "logged_first_request", False):
            logger = logging.getLogger("dripfeed.request")
            user_agent = request.headers.get("user-agent", "")
            client_name = user_agent.split("/")[0] if user_agent else "unknown"
            client_ip = request.client.host if request.client else "unknown"
            message = (
                'client_connected="%s" ip="%s" url="%s %s" ua="%s"'
                % (
                    client_name,
                    client_ip,
                    request.method,
                    str(request.url),
                    user_agent,
                )
            )
            logger.info(message)
            request.app.state.logged_first_request = True
        return await call_next(request)


def _get_lan_ip() -> Optional[str]:
    """Return this machine's LAN IP (for the feed URL when binding to 0.0.0.0)."""
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
            s.connect(("8.8.8.8", 80))
            return s.getsockname()[0]
    except OSError:
        return None


@asynccontextmanager
async def _lifespan(app: FastAPI):
    async def _print_startup_messages():
        await asyncio.sleep(0.1)
        logger.info("Started server process [" + str(os.getpid()) + "]")
        logger.info("Application startup complete. (Press CTRL+C to quit)")
        feeds_url = getattr(app.state, "feeds_url_public", None)
        if feeds_url:
            logger.info("Feeds available at: " + feeds_url + "<reading_id>")
        if getattr(app.state, "monitoring_enabled", False):
            logger.info("Data file monitoring enabled")

    asyncio.create_task(_print_startup_messages())
    yield


def get_release_engine(request: Request) -> ReleaseEngine:
    return request.app.state.engine


def _text(body: str, status_code: int) -> PlainTextResponse:
    return PlainTextResponse(body, status_code=status_code)


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return _text(NOT_FOUND_BODY, 404)
        return _text(str(exc.detail), exc.status_code)

    @app.exception_handler(NotFoundError)
    async def not_found(request: Request, exc: NotFoundError):
        logger.info(f"{request.url.path}: {exc}")
        return _text(NOT_FOUND_BODY, 404)

    @app.exception_handler(StoreIOError)
    async def store_unreadable(request: Request, exc: StoreIOError):
        logger.error(f"{request.url.path}: {exc}")
        return _text(exc.reason, 500)

    @app.exception_handler(StoreParseError)
    async def store_corrupt(request: Request, exc: StoreParseError):
        logger.exception(f"Corrupt store while serving {request.url.path}", exc_info=exc)
        return _text(SERVER_ERROR_BODY, 500)

    @app.exception_handler(ConsistencyError)
    async def inconsistent(request: Request, exc: ConsistencyError):
        logger.exception(f"Inconsistent data while serving {request.url.path}", exc_info=exc)
        return _text(SERVER_ERROR_BODY, 500)

    @app.exception_handler(UpstreamError)
    async def upstream_failed(request: Request, exc: UpstreamError):
        logger.warning(f"{request.url.path}: {exc}")
        return _text(str(exc), 502)


def create_app(config: DripfeedConfig, engine: Optional[ReleaseEngine] = None) -> FastAPI:
    """Build the FastAPI app around one immutable config.

    Args:
        config: Loaded configuration
        engine: Release engine to use; built from config when omitted
    """
    if engine is None:
        source = ChapterSource(
            timeout=config.source.timeout,
            method=config.source.method,
            retries=config.source.retries,
            user_agent=config.source.user_agent,
        )
        engine = ReleaseEngine(config, source)

    app = FastAPI(title="dripfeed", lifespan=_lifespan)
    app.state.config = config
    app.state.engine = engine
    app.add_middleware(RequestLoggingMiddleware)
    _register_error_handlers(app)

    @app.get("/favicon.ico", include_in_schema=False)
    def favicon() -> Response:
        return Response(status_code=204)

    @app.get("/feeds/{reading_id}")
    def feed(
        reading_id: str,
        request: Request,
        engine: ReleaseEngine = Depends(get_release_engine),
    ) -> Response:
        """RSS feed of the chapters currently visible to a subscription."""
        plan = engine.resolve(reading_id)
        xml = render_rss(plan, str(request.url))
        return Response(content=xml, media_type=RSS_MEDIA_TYPE)

    return app


class _AccessFilter(logging.Filter):
    """Filter out access log lines for successful requests to reduce console noise.
    Keep errors (4xx, 5xx) visible for debugging.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            msg = record.getMessage()
        except Exception:
            return True
        return not any(
            pattern in msg
            for pattern in (' 200 OK', '" 200', ' 204 No Content', '" 204')
        )


class _UvicornStartupFilter(logging.Filter):
    """Suppress uvicorn startup messages; we print our own in lifespan."""

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            msg = record.getMessage()
        except Exception:
            return True
        for marker in (
            "Started server process",
            "Waiting for application startup",
            "Application startup complete",
            "running on",
        ):
            if marker in msg:
                return False
        return True


def run_server(
    config: DripfeedConfig,
    host: Optional[str],
    port: Optional[int],
    monitoring_enabled: bool = False,
) -> None:
    """Run the FastAPI app with Uvicorn."""
    import uvicorn

    effective_host = host or config.server.host
    effective_port = port or config.server.port

    app = create_app(config)
    app.state.monitoring_enabled = monitoring_enabled

    if effective_host == "0.0.0.0":
        public_host = _get_lan_ip() or "0.0.0.0"
    else:
        public_host = effective_host
    app.state.feeds_url_public = f"http://{public_host}:{effective_port}/feeds/"

    startup_filter = _UvicornStartupFilter()
    for name in ("uvicorn", "uvicorn.error", "uvicorn.lifespan"):
        logging.getLogger(name).addFilter(startup_filter)
    logging.getLogger("uvicorn.access").addFilter(_AccessFilter())

    try:
        uvicorn.run(
            app,
            host=effective_host,
            port=effective_port,
            log_level="info",
            log_config=None,
        )
    finally:
        app.state.engine.source.close()
