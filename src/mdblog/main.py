"""Web server for the rendered site.

Two FastAPI applications run side by side: the site application serves
the static site generator's output directory, and the metrics
application exposes Prometheus metrics, a health check and build
information on its own port.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from email.utils import format_datetime, parsedate_to_datetime

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import PlainTextResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from mdblog import __version__
from mdblog.config import Settings, settings
from mdblog.core.filecache import CachedFile, FileCache, sanitize_path
from mdblog.core.metrics import record_metrics, render_metrics
from mdblog.log import ACCESS_LOGGER

logger = logging.getLogger(__name__)
access_logger = logging.getLogger(ACCESS_LOGGER)

CACHE_CONTROL = "max-age=31536000"


class VersionInfo(BaseModel):
    """Build information reported by /version."""

    version: str
    git_commit: str
    build_time: str


def client_ip(request: Request) -> str:
    """Real client address, preferring proxy headers over the socket peer."""
    address = request.headers.get("cf-connecting-ip")
    if not address:
        forwarded = request.headers.get("x-forwarded-for", "")
        address = forwarded.split(",")[0].strip()
    if not address and request.client is not None:
        address = request.client.host
    return address or "-"


def format_access_line(
    request: Request,
    status_code: int,
    size: int,
    now: datetime | None = None,
) -> str:
    """Format one access log line.

    ``<host> <client-ip> [<time>] "<method> <uri> <proto>" <status> <size>
    "<referer>" "<user-agent>"``
    """
    now = now or datetime.now(timezone.utc)
    uri = request.url.path
    if request.url.query:
        uri += "?" + request.url.query
    proto = "HTTP/" + request.scope.get("http_version", "1.1")
    return '{} {} [{}] "{} {} {}" {} {} "{}" "{}"'.format(
        request.headers.get("host", "-"),
        client_ip(request),
        now.strftime("%d/%b/%Y:%H:%M:%S %z"),
        request.method,
        uri,
        proto,
        status_code,
        size,
        request.headers.get("referer", ""),
        request.headers.get("user-agent", ""),
    )


def metrics_response() -> Response:
    body, content_type = render_metrics()
    return Response(content=body, media_type=content_type)


class ObserveRequestMiddleware:
    """Record request metrics and write the access log line.

    Response messages are forwarded unchanged; the logged size is the
    number of body bytes sent.
    """

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        start = time.perf_counter()
        sanitized = sanitize_path(scope["path"])
        status_code = 500
        size = 0

        async def send_observed(message: Message) -> None:
            nonlocal status_code, size
            if message["type"] == "http.response.start":
                status_code = message["status"]
            elif message["type"] == "http.response.body":
                size += len(message.get("body", b""))
            await send(message)

        try:
            await self.app(scope, receive, send_observed)
        finally:
            duration = time.perf_counter() - start
            record_metrics(sanitized, duration)
            logger.debug("Request for %s processed in %f seconds", sanitized, duration)
            access_logger.info(format_access_line(Request(scope), status_code, size))


def _not_modified(request: Request, cached: CachedFile) -> bool:
    """Evaluate If-None-Match, then If-Modified-Since."""
    if_none_match = request.headers.get("if-none-match")
    if if_none_match is not None:
        tags = {tag.strip() for tag in if_none_match.split(",")}
        return "*" in tags or cached.etag in tags or f"W/{cached.etag}" in tags

    if_modified_since = request.headers.get("if-modified-since")
    if not if_modified_since:
        return False
    try:
        since = parsedate_to_datetime(if_modified_since)
    except (TypeError, ValueError):
        return False
    if since.tzinfo is None:
        since = since.replace(tzinfo=timezone.utc)
    return cached.mod_time <= since


def serve_from_memory(request: Request, files: FileCache) -> Response:
    """Serve a request from the in-memory copy of the site."""
    sanitized = sanitize_path(request.scope["path"])
    logger.debug("Serving request for: %s", sanitized)

    found = files.lookup(sanitized)
    if found is None:
        logger.info("Returning 404 for path: %s", sanitized)
        return PlainTextResponse("404 page not found", status_code=404)

    path, cached = found
    logger.debug("Serving %s from memory", path)
    headers = {
        "Cache-Control": CACHE_CONTROL,
        "X-Content-Type-Options": "nosniff",
        "Last-Modified": format_datetime(cached.mod_time, usegmt=True),
        "ETag": cached.etag,
    }
    if _not_modified(request, cached):
        return Response(status_code=304, headers=headers)

    headers["Content-Length"] = str(len(cached.content))
    content = b"" if request.method == "HEAD" else cached.content
    return Response(content=content, media_type=cached.content_type, headers=headers)


def create_site_app(app_settings: Settings | None = None) -> FastAPI:
    """Create the application that serves the rendered site.

    In memory mode the web root is loaded before the application is
    returned, so a missing or unreadable web root fails at start-up.
    """
    cfg = app_settings or settings
    app = FastAPI(
        title=cfg.app_title,
        debug=cfg.debug,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    app.add_middleware(ObserveRequestMiddleware)
    # Added last so it wraps the metrics and access log middleware
    app.add_middleware(GZipMiddleware, minimum_size=500)

    @app.get("/metrics")
    async def metrics():
        """Prometheus metrics."""
        return metrics_response()

    if cfg.use_memory:
        logger.info("Loading files from %s into memory", cfg.web_root)
        files = FileCache()
        files.load(cfg.web_root)
        app.state.files = files

        @app.api_route("/{path:path}", methods=["GET", "HEAD"])
        async def site(request: Request):
            """Serve the site from memory."""
            return serve_from_memory(request, files)

    else:
        logger.info("Serving files directly from %s", cfg.web_root)
        app.state.files = None
        app.mount(
            "/",
            StaticFiles(directory=cfg.web_root, html=True, check_dir=False),
            name="site",
        )

    return app


def create_metrics_app(app_settings: Settings | None = None) -> FastAPI:
    """Create the metrics, health and version application."""
    cfg = app_settings or settings
    app = FastAPI(
        title=f"{cfg.app_title} metrics",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    @app.get("/metrics")
    async def metrics():
        """Prometheus metrics."""
        return metrics_response()

    @app.get("/healthz", response_class=PlainTextResponse)
    async def healthz():
        """Liveness check."""
        return "ok"

    @app.get("/version")
    async def version() -> VersionInfo:
        """Build information."""
        return VersionInfo(
            version=__version__,
            git_commit=cfg.git_commit,
            build_time=cfg.build_time,
        )

    return app


async def serve(app_settings: Settings | None = None) -> None:
    """Run the site and metrics applications until interrupted."""
    cfg = app_settings or settings
    site = uvicorn.Server(
        uvicorn.Config(
            create_site_app(cfg),
            host=cfg.host,
            port=cfg.port,
            log_config=None,
            access_log=False,
        )
    )
    metrics = uvicorn.Server(
        uvicorn.Config(
            create_metrics_app(cfg),
            host=cfg.host,
            port=cfg.metrics_port,
            log_config=None,
            access_log=False,
        )
    )
    logger.info("Serving %s on HTTP port %d", cfg.web_root, cfg.port)
    logger.info("Metrics server listening on port %d", cfg.metrics_port)
    await asyncio.gather(site.serve(), metrics.serve())
