"""FastAPI application for the per-channel status passthrough."""

import logging
from contextlib import asynccontextmanager
from typing import Any, Callable, Optional

import httpx
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry

from logging_module import LoggingConfig, setup_logging
from metadata_sync.errors import ChannelNotFound, ParseError, TransportError
from monitoring.metrics import SyncMetrics
from status_proxy.config import Settings
from status_proxy.normalizer import normalize

logger = logging.getLogger(__name__)

ClientFactory = Callable[..., httpx.AsyncClient]


def setup_exception_handlers(app: FastAPI) -> None:
    """Setup global exception handlers for the app.

    Args:
        app: FastAPI application instance.
    """

    @app.exception_handler(ChannelNotFound)
    async def channel_not_found_handler(request: Request, exc: ChannelNotFound):
        """Channel is off air: status only, no data."""
        logger.info(f"Channel not found upstream: {exc}")
        return Response(status_code=status.HTTP_404_NOT_FOUND, media_type="application/json")

    @app.exception_handler(TransportError)
    async def transport_exception_handler(request: Request, exc: TransportError):
        """Handle upstream connection failures."""
        logger.warning(f"Upstream error: {exc}")
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content={"detail": "Upstream status server unavailable", "message": str(exc)},
        )

    @app.exception_handler(ParseError)
    async def parse_exception_handler(request: Request, exc: ParseError):
        """Handle malformed upstream documents."""
        logger.warning(f"Upstream document error: {exc}")
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content={"detail": "Invalid upstream status document", "message": str(exc)},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle all other exceptions."""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "Internal server error",
                "message": str(exc) if app.debug else "An error occurred",
            },
        )


async def fetch_status_document(client: httpx.AsyncClient, url: str, channel: str) -> Any:
    """GET the upstream aggregate status document.

    Raises:
        TransportError: On connection failure or non-2xx status.
        ParseError: If the body is not JSON.
    """
    try:
        response = await client.get(url)
    except httpx.RequestError as e:
        raise TransportError(f"Request to {url} failed: {e}", channel) from e

    if not response.is_success:
        raise TransportError(f"HTTP {response.status_code} from {url}", channel)

    try:
        return response.json()
    except ValueError as e:
        raise ParseError(f"Invalid JSON from {url}: {e}", channel) from e


def create_app(
    settings: Optional[Settings] = None,
    client_factory: Optional[ClientFactory] = None,
    metrics: Optional[SyncMetrics] = None,
) -> FastAPI:
    """Build the application.

    Args:
        settings: Service settings. Loaded from the environment if omitted.
        client_factory: Callable returning an ``httpx.AsyncClient``; receives
            a ``timeout`` keyword argument.
        metrics: Metrics exporter. A private registry is used if omitted.
    """
    settings = settings or Settings()
    client_factory = client_factory or (
        lambda **kwargs: httpx.AsyncClient(follow_redirects=True, **kwargs)
    )
    metrics = metrics or SyncMetrics(CollectorRegistry())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Starting {settings.app_name} for channels: {', '.join(settings.channels)}")
        yield
        logger.info(f"Shutting down {settings.app_name}...")

    app = FastAPI(
        title=settings.app_name,
        description="Per-channel view of upstream Icecast status",
        version=settings.app_version,
        debug=settings.debug,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    setup_exception_handlers(app)

    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "channels": list(settings.channels)}

    @app.get("/metrics")
    async def metrics_endpoint():
        return Response(content=metrics.get_metrics(), media_type=CONTENT_TYPE_LATEST)

    @app.get("/{channel}-status")
    async def channel_status(channel: str):
        """Return the channel's upstream status entry with a public listen URL."""
        source = settings.channels.get(channel)
        if source is None:
            return JSONResponse(
                status_code=status.HTTP_404_NOT_FOUND,
                content={"detail": f"Unknown channel '{channel}'"},
            )

        try:
            async with client_factory(timeout=settings.upstream_timeout) as client:
                document = await fetch_status_document(client, source.status_url, channel)
            published = normalize(document, source.source_name, source.public_listen_url)
        except ChannelNotFound:
            metrics.record_status_request(channel, "not_found")
            raise
        except (TransportError, ParseError):
            metrics.record_status_request(channel, "upstream_error")
            raise

        metrics.record_status_request(channel, "ok")
        return published

    return app


def run() -> None:
    """Run the service with uvicorn."""
    import uvicorn

    setup_logging(LoggingConfig.from_env())
    settings = Settings()
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
