"""FastAPI application serving relay metadata as JSON and as an event stream."""

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, Response, StreamingResponse
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry

from logging_module import LoggingConfig, setup_logging
from monitoring.metrics import RelayMetrics
from relay_metadata.config import ProbeConfig
from relay_metadata.processor import (
    Broadcaster,
    MetadataPublisher,
    SessionFactory,
    StreamProcessor,
)
from relay_metadata.vorbis import StreamMetadata

logger = logging.getLogger(__name__)

NO_METADATA = "No metadata available"
KEEPALIVE_COMMENT = ":keep-alive-text\n\n"


def format_event(data: str) -> str:
    """Encode one ``message`` event; multi-line data becomes several fields."""
    return "".join(f"data: {line}\n" for line in data.split("\n")) + "\n"


def _snapshot_event(metadata: StreamMetadata) -> str:
    return format_event(json.dumps(metadata.to_dict()))


async def live_events(
    publisher: MetadataPublisher,
    broadcaster: Broadcaster,
    keepalive_interval: float,
) -> AsyncIterator[str]:
    """Yield the current snapshot, then every published one.

    Ends when the subscriber is dropped for falling behind.
    """
    queue = broadcaster.subscribe()
    try:
        current = publisher.current
        yield _snapshot_event(current) if current is not None else format_event(NO_METADATA)

        while True:
            try:
                metadata = await asyncio.wait_for(queue.get(), timeout=keepalive_interval)
            except asyncio.TimeoutError:
                yield KEEPALIVE_COMMENT
                continue
            if metadata is None:
                return
            yield _snapshot_event(metadata)
    finally:
        broadcaster.unsubscribe(queue)


def create_app(
    config: Optional[ProbeConfig] = None,
    session_factory: Optional[SessionFactory] = None,
    metrics: Optional[RelayMetrics] = None,
    start_processor: bool = True,
) -> FastAPI:
    """Build the application.

    Args:
        config: Service configuration. Loaded from the environment if omitted.
        session_factory: Callable returning an ``aiohttp.ClientSession``.
        metrics: Metrics exporter. A private registry is used if omitted.
        start_processor: Start reading the source stream on startup.
    """
    config = config or ProbeConfig.from_env()
    config.validate()
    metrics = metrics or RelayMetrics(CollectorRegistry())

    broadcaster = Broadcaster(config.subscriber_queue_size, metrics=metrics)
    publisher = MetadataPublisher(broadcaster, config.min_update_interval, metrics=metrics)
    processor = StreamProcessor(config, publisher, session_factory, metrics=metrics)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Starting metadata processor for {config.stream_url}")
        task = None
        if start_processor:
            task = asyncio.create_task(processor.run_forever(), name="relay-stream-processor")
        try:
            yield
        finally:
            logger.info("Shutting down metadata processor...")
            if task is not None:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

    app = FastAPI(
        title="Relay Metadata",
        description="Now-playing metadata extracted from an Ogg/Vorbis relay",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.publisher = publisher
    app.state.broadcaster = broadcaster
    app.state.processor = processor

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy",
            "has_metadata": publisher.current is not None,
            "live_subscribers": broadcaster.subscriber_count,
        }

    @app.get("/metrics")
    async def metrics_endpoint():
        return Response(content=metrics.get_metrics(), media_type=CONTENT_TYPE_LATEST)

    @app.get("/metadata")
    async def get_metadata():
        """Current snapshot, or 404 before the first one."""
        if publisher.current is None:
            return PlainTextResponse(NO_METADATA, status_code=404)
        return JSONResponse(publisher.current.to_dict())

    @app.get("/live")
    async def get_live_metadata():
        """Server-sent events: current snapshot first, then every update."""
        return StreamingResponse(
            live_events(publisher, broadcaster, config.keepalive_interval),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    return app


def run() -> None:
    """Run the service with uvicorn."""
    import uvicorn

    setup_logging(LoggingConfig.from_env())
    config = ProbeConfig.from_env()
    uvicorn.run(create_app(config), host=config.host, port=config.port)


if __name__ == "__main__":
    run()
