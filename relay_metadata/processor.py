"""Source stream reader, update throttling and live fan-out."""

import asyncio
import logging
import time
from typing import Callable, Optional, Set

import aiohttp

from monitoring.metrics import RelayMetrics
from relay_metadata.config import ProbeConfig
from relay_metadata.vorbis import StreamMetadata, latest_metadata

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], aiohttp.ClientSession]


class StreamError(Exception):
    """The source stream could not be read."""


class Broadcaster:
    """Fan-out of published snapshots to live subscribers.

    Each subscriber owns a bounded queue. A subscriber that falls a full
    queue behind is dropped: its queue is drained and closed with ``None``.
    """

    def __init__(self, queue_size: int = 100, metrics: Optional[RelayMetrics] = None):
        self.queue_size = queue_size
        self._subscribers: Set[asyncio.Queue] = set()
        self._metrics = metrics

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        self._subscribers.add(queue)
        self._update_gauge()
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        self._subscribers.discard(queue)
        self._update_gauge()

    def publish(self, metadata: StreamMetadata) -> None:
        for queue in list(self._subscribers):
            try:
                queue.put_nowait(metadata)
            except asyncio.QueueFull:
                logger.warning("Dropping live subscriber that fell behind")
                self._drop(queue)

    def _drop(self, queue: asyncio.Queue) -> None:
        self._subscribers.discard(queue)
        while not queue.empty():
            queue.get_nowait()
        queue.put_nowait(None)
        if self._metrics:
            self._metrics.record_dropped_subscriber()
        self._update_gauge()

    def _update_gauge(self) -> None:
        if self._metrics:
            self._metrics.set_live_subscribers(len(self._subscribers))


class MetadataPublisher:
    """Holds the current snapshot and decides when a new one is published.

    A snapshot is published when its display string differs from the last
    published one and at least ``min_interval`` seconds have passed since the
    previous publish. A change arriving too early is held as pending and
    published by :meth:`flush_pending` once the interval has passed.
    """

    def __init__(
        self,
        broadcaster: Broadcaster,
        min_interval: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
        metrics: Optional[RelayMetrics] = None,
    ):
        self.broadcaster = broadcaster
        self.min_interval = min_interval
        self.current: Optional[StreamMetadata] = None
        self.pending: Optional[StreamMetadata] = None
        self._clock = clock
        self._metrics = metrics
        self._last_display: Optional[str] = None
        self._last_publish_at: Optional[float] = None

    def offer(self, metadata: StreamMetadata) -> bool:
        """Consider a freshly parsed snapshot.

        Returns:
            bool: True if the snapshot was published.
        """
        if not metadata.is_complete():
            return False

        if metadata.display() == self._last_display:
            self.pending = None
            return False

        if self._interval_elapsed():
            self._publish(metadata)
            return True

        self.pending = metadata
        return False

    def flush_pending(self) -> bool:
        """Publish the pending snapshot if its wait is over."""
        if self.pending is None or not self._interval_elapsed():
            return False
        metadata, self.pending = self.pending, None
        self._publish(metadata)
        return True

    def _interval_elapsed(self) -> bool:
        if self._last_publish_at is None:
            return True
        return self._clock() - self._last_publish_at >= self.min_interval

    def _publish(self, metadata: StreamMetadata) -> None:
        display = metadata.display()
        logger.info(f"Now playing: {display}", extra={"event": "metadata_published"})
        self.current = metadata
        self._last_display = display
        self._last_publish_at = self._clock()
        if self._metrics:
            self._metrics.record_published()
        self.broadcaster.publish(metadata)


class StreamProcessor:
    """Reads the source stream and feeds comment headers to the publisher."""

    def __init__(
        self,
        config: ProbeConfig,
        publisher: MetadataPublisher,
        session_factory: Optional[SessionFactory] = None,
        metrics: Optional[RelayMetrics] = None,
    ):
        self.config = config
        self.publisher = publisher
        self._session_factory = session_factory or aiohttp.ClientSession
        self._metrics = metrics

    async def run_forever(self) -> None:
        """Read the stream, reconnecting after a fixed delay on any failure."""
        while True:
            logger.info(f"Connecting to stream {self.config.stream_url}...")
            try:
                await self.process_stream()
                logger.warning("Source stream ended")
            except (aiohttp.ClientError, asyncio.TimeoutError, StreamError) as e:
                logger.error(f"Stream processor error: {e}")

            if self._metrics:
                self._metrics.record_stream_reconnect()
            logger.info(f"Retrying in {self.config.retry_delay:g} seconds...")
            await asyncio.sleep(self.config.retry_delay)

    async def process_stream(self) -> None:
        """Consume one connection until the stream ends.

        Raises:
            StreamError: If the server refuses the stream.
            aiohttp.ClientError: On connection or read failure.
        """
        timeout = aiohttp.ClientTimeout(total=None, sock_connect=self.config.connect_timeout)
        async with self._session_factory() as session:
            async with session.get(self.config.stream_url, timeout=timeout) as response:
                if response.status != 200:
                    raise StreamError(f"Stream returned status {response.status}")

                logger.info("Connected to stream, listening for metadata updates...")
                buffer = bytearray()
                async for chunk in response.content.iter_chunked(self.config.chunk_size):
                    buffer.extend(chunk)
                    self.scan(buffer)
                    if len(buffer) > self.config.buffer_limit:
                        del buffer[: len(buffer) - self.config.buffer_limit]

    def scan(self, buffer: bytes) -> None:
        """Offer the newest header in ``buffer`` and release any due update."""
        metadata = latest_metadata(bytes(buffer))
        if metadata is not None:
            self.publisher.offer(metadata)
        self.publisher.flush_pending()
