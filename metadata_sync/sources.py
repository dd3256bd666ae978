"""Metadata sources for a channel.

Both transports satisfy the same contract: ``subscribe(on_metadata)``
returns a :class:`SubscriptionHandle` and delivers raw metadata records to
the callback until ``unsubscribe(handle)`` is called.

- :class:`PullSource` fetches ``{endpoint}/metadata`` immediately and then
  on a fixed interval. Failures are logged and the next tick retries.
- :class:`PushSource` keeps a ``text/event-stream`` connection open and
  parses every message as one record. A dropped connection is re-opened
  with bounded exponential backoff.
"""

import asyncio
import itertools
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

import httpx

from monitoring.metrics import SyncMetrics

from .config import ChannelConfig, PullTransport, PushTransport, SyncConfig
from .errors import ParseError, TransportError
from .models import RawMetadata

logger = logging.getLogger(__name__)

MetadataCallback = Callable[["SubscriptionHandle", RawMetadata], None]
ClientFactory = Callable[..., httpx.AsyncClient]

# httpx defaults for request/response; the push stream itself never times out on read.
PULL_TIMEOUT = httpx.Timeout(5.0)
PUSH_TIMEOUT = httpx.Timeout(5.0, read=None)


def _default_client_factory(**kwargs: Any) -> httpx.AsyncClient:
    return httpx.AsyncClient(follow_redirects=True, **kwargs)


class SubscriptionHandle:
    """One live poll timer or push connection for a channel.

    Handles are compared by identity. Once ``closed`` is set no further
    records are delivered for this handle.
    """

    _ids = itertools.count(1)

    def __init__(self, channel: str):
        self.id = next(self._ids)
        self.channel = channel
        self.closed = False
        self._task: Optional[asyncio.Task] = None

    async def wait_closed(self) -> None:
        """Wait until the handle's background task has fully finished."""
        if self._task is not None and not self._task.done():
            await asyncio.wait({self._task})

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open"
        return f"<SubscriptionHandle #{self.id} {self.channel} {state}>"


@dataclass(frozen=True)
class ReconnectPolicy:
    """Bounded exponential backoff for push reconnection."""

    max_attempts: int = 5
    base_delay: float = 1.0
    max_delay: float = 30.0
    multiplier: float = 2.0

    def delay_for(self, attempt: int) -> float:
        """Delay before reconnection attempt number ``attempt`` (1-based)."""
        return min(self.base_delay * self.multiplier ** (attempt - 1), self.max_delay)

    @classmethod
    def from_config(cls, config: SyncConfig) -> "ReconnectPolicy":
        return cls(
            max_attempts=config.push_reconnect_max_attempts,
            base_delay=config.push_reconnect_base_delay,
            max_delay=config.push_reconnect_max_delay,
        )


@dataclass
class ServerSentEvent:
    """A dispatched ``text/event-stream`` message."""

    data: str
    event: str = "message"
    id: Optional[str] = None
    retry: Optional[int] = None


class SseDecoder:
    """Incremental line decoder for ``text/event-stream`` bodies."""

    def __init__(self) -> None:
        self._data: List[str] = []
        self._event = ""
        self._id: Optional[str] = None
        self._retry: Optional[int] = None

    def decode(self, line: str) -> Optional[ServerSentEvent]:
        """Feed one line (without its terminator).

        Returns:
            ServerSentEvent when a blank line dispatches a pending event,
            otherwise None.
        """
        line = line.rstrip("\r\n")

        if not line:
            if not self._data and not self._event:
                return None
            event = ServerSentEvent(
                data="\n".join(self._data),
                event=self._event or "message",
                id=self._id,
                retry=self._retry,
            )
            self._data = []
            self._event = ""
            self._retry = None
            return event

        if line.startswith(":"):
            return None

        field_name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]

        if field_name == "data":
            self._data.append(value)
        elif field_name == "event":
            self._event = value
        elif field_name == "id":
            if "\0" not in value:
                self._id = value
        elif field_name == "retry":
            if value.isdigit():
                self._retry = int(value)

        return None


class MetadataSource:
    """Base class for a channel's metadata transport."""

    kind = ""

    def __init__(
        self,
        channel: ChannelConfig,
        client_factory: Optional[ClientFactory] = None,
        metrics: Optional[SyncMetrics] = None,
    ):
        """Initialize the source.

        Args:
            channel: Channel configuration.
            client_factory: Callable returning an ``httpx.AsyncClient``;
                receives a ``timeout`` keyword argument.
            metrics: Optional metrics exporter.
        """
        self.channel = channel
        self._client_factory = client_factory or _default_client_factory
        self._metrics = metrics

    def subscribe(self, on_metadata: MetadataCallback) -> SubscriptionHandle:
        """Start delivering metadata records to ``on_metadata``.

        Must be called from within a running event loop.

        Returns:
            SubscriptionHandle: Handle to pass to :meth:`unsubscribe`.
        """
        handle = SubscriptionHandle(self.channel.name)
        handle._task = asyncio.create_task(
            self._run(handle, on_metadata),
            name=f"metadata-{self.kind}-{self.channel.name}-{handle.id}",
        )
        handle._task.add_done_callback(self._log_task_failure)
        logger.info(
            f"[{self.channel.name}] Subscribed to {self.kind} metadata (handle #{handle.id})"
        )
        return handle

    def unsubscribe(self, handle: SubscriptionHandle) -> None:
        """Release a subscription. Safe to call repeatedly."""
        if handle.closed and (handle._task is None or handle._task.done()):
            return

        handle.closed = True
        if handle._task is not None and not handle._task.done():
            handle._task.cancel()
        logger.info(f"[{self.channel.name}] Unsubscribed handle #{handle.id}")

    async def fetch_once(self) -> Optional[RawMetadata]:
        """Fetch the current metadata record a single time.

        Returns:
            The decoded record, or None if the fetch failed.
        """
        async with self._client_factory(timeout=PULL_TIMEOUT) as client:
            try:
                return await self._fetch_json(client, self.channel.metadata_url)
            except TransportError as e:
                self._record_error("transport", e)
            except ParseError as e:
                self._record_error("parse", e)
        return None

    async def _run(self, handle: SubscriptionHandle, on_metadata: MetadataCallback) -> None:
        raise NotImplementedError

    async def _fetch_json(self, client: httpx.AsyncClient, url: str) -> RawMetadata:
        """GET ``url`` and decode a JSON object.

        Raises:
            TransportError: On connection failure or non-2xx status.
            ParseError: If the body is not a JSON object.
        """
        started = time.monotonic()
        try:
            response = await client.get(url, headers={"Accept": "application/json"})
        except httpx.RequestError as e:
            raise TransportError(f"Request to {url} failed: {e}", self.channel.name) from e
        finally:
            if self._metrics:
                self._metrics.observe_fetch(time.monotonic() - started)

        if not response.is_success:
            raise TransportError(
                f"HTTP {response.status_code} from {url}", self.channel.name
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ParseError(f"Invalid JSON from {url}: {e}", self.channel.name) from e

        if not isinstance(data, dict):
            raise ParseError(
                f"Expected a JSON object from {url}, got {type(data).__name__}",
                self.channel.name,
            )
        return data

    def _deliver(
        self, handle: SubscriptionHandle, on_metadata: MetadataCallback, raw: RawMetadata
    ) -> None:
        if handle.closed:
            logger.debug(f"[{self.channel.name}] Dropping record for closed handle #{handle.id}")
            return
        try:
            on_metadata(handle, raw)
        except Exception as e:
            logger.error(
                f"[{self.channel.name}] Metadata callback failed: {e}", exc_info=True
            )

    def _log_task_failure(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(
                f"[{self.channel.name}] Metadata {self.kind} loop crashed: {error}",
                exc_info=error,
            )

    def _record_error(self, kind: str, error: Exception) -> None:
        logger.warning(f"[{self.channel.name}] Metadata {kind} error: {error}")
        if self._metrics:
            self._metrics.record_metadata_error(self.channel.name, kind)


class PullSource(MetadataSource):
    """Constant-interval polling of the metadata endpoint."""

    kind = "pull"

    def __init__(
        self,
        channel: ChannelConfig,
        interval: Optional[float] = None,
        client_factory: Optional[ClientFactory] = None,
        metrics: Optional[SyncMetrics] = None,
    ):
        super().__init__(channel, client_factory=client_factory, metrics=metrics)
        if interval is None:
            transport = channel.transport
            interval = transport.interval if isinstance(transport, PullTransport) else 5.0
        self.interval = interval

    async def _run(self, handle: SubscriptionHandle, on_metadata: MetadataCallback) -> None:
        async with self._client_factory(timeout=PULL_TIMEOUT) as client:
            while not handle.closed:
                try:
                    raw = await self._fetch_json(client, self.channel.metadata_url)
                except TransportError as e:
                    self._record_error("transport", e)
                except ParseError as e:
                    self._record_error("parse", e)
                else:
                    self._deliver(handle, on_metadata, raw)

                await asyncio.sleep(self.interval)


class PushSource(MetadataSource):
    """Server-push subscription over ``text/event-stream``."""

    kind = "push"

    def __init__(
        self,
        channel: ChannelConfig,
        reconnect: Optional[ReconnectPolicy] = None,
        client_factory: Optional[ClientFactory] = None,
        metrics: Optional[SyncMetrics] = None,
    ):
        super().__init__(channel, client_factory=client_factory, metrics=metrics)
        self.reconnect = reconnect or ReconnectPolicy()

    async def _run(self, handle: SubscriptionHandle, on_metadata: MetadataCallback) -> None:
        failures = 0
        async with self._client_factory(timeout=PUSH_TIMEOUT) as client:
            while not handle.closed:
                connected = False

                def mark_connected() -> None:
                    nonlocal connected
                    connected = True

                try:
                    await self._listen(client, handle, on_metadata, mark_connected)
                    reason = "stream closed by server"
                except TransportError as e:
                    self._record_error("transport", e)
                    reason = str(e)

                if handle.closed:
                    return

                failures = 1 if connected else failures + 1
                if failures > self.reconnect.max_attempts:
                    logger.error(
                        f"[{self.channel.name}] Push channel lost ({reason}); giving up after "
                        f"{self.reconnect.max_attempts} reconnection attempts"
                    )
                    handle.closed = True
                    return

                delay = self.reconnect.delay_for(failures)
                logger.warning(
                    f"[{self.channel.name}] Push channel lost ({reason}); reconnecting in "
                    f"{delay:.1f}s (attempt {failures}/{self.reconnect.max_attempts})"
                )
                if self._metrics:
                    self._metrics.record_push_reconnect(self.channel.name)
                await asyncio.sleep(delay)

    async def _listen(
        self,
        client: httpx.AsyncClient,
        handle: SubscriptionHandle,
        on_metadata: MetadataCallback,
        on_connect: Callable[[], None],
    ) -> None:
        """Consume one push connection until it ends.

        Raises:
            TransportError: If the connection cannot be opened or breaks.
        """
        url = self.channel.live_url
        headers = {"Accept": "text/event-stream", "Cache-Control": "no-cache"}
        decoder = SseDecoder()

        try:
            async with client.stream("GET", url, headers=headers) as response:
                if not response.is_success:
                    raise TransportError(
                        f"HTTP {response.status_code} from {url}", self.channel.name
                    )

                on_connect()
                logger.info(f"[{self.channel.name}] Push channel open: {url}")

                async for line in response.aiter_lines():
                    event = decoder.decode(line)
                    if event is None or event.event != "message":
                        continue
                    if handle.closed:
                        return
                    try:
                        raw = self._parse_event(event)
                    except ParseError as e:
                        self._record_error("parse", e)
                        continue
                    self._deliver(handle, on_metadata, raw)
        except httpx.RequestError as e:
            raise TransportError(f"Push channel {url} failed: {e}", self.channel.name) from e

    def _parse_event(self, event: ServerSentEvent) -> RawMetadata:
        try:
            data = json.loads(event.data)
        except ValueError as e:
            raise ParseError(
                f"Invalid event data {event.data[:80]!r}: {e}", self.channel.name
            ) from e
        if not isinstance(data, dict):
            raise ParseError(
                f"Expected a JSON object in event data, got {type(data).__name__}",
                self.channel.name,
            )
        return data


def build_source(
    channel: ChannelConfig,
    config: Optional[SyncConfig] = None,
    client_factory: Optional[ClientFactory] = None,
    metrics: Optional[SyncMetrics] = None,
) -> MetadataSource:
    """Create the metadata source matching a channel's transport variant."""
    transport = channel.transport
    if isinstance(transport, PullTransport):
        return PullSource(
            channel,
            interval=transport.interval,
            client_factory=client_factory,
            metrics=metrics,
        )
    if isinstance(transport, PushTransport):
        reconnect = ReconnectPolicy.from_config(config) if config else ReconnectPolicy()
        return PushSource(
            channel,
            reconnect=reconnect,
            client_factory=client_factory,
            metrics=metrics,
        )
    raise ValueError(f"Unsupported transport for channel '{channel.name}': {transport!r}")


class SubscriptionScope:
    """Owns at most one live subscription for a channel.

    ``acquire`` is called on entering Playing and ``release`` on every exit
    (pause, end, error, close). Acquiring while a handle is live releases
    the old one first.
    """

    def __init__(self, source: MetadataSource, on_metadata: MetadataCallback):
        self.source = source
        self._on_metadata = on_metadata
        self._handle: Optional[SubscriptionHandle] = None

    @property
    def handle(self) -> Optional[SubscriptionHandle]:
        return self._handle

    @property
    def active(self) -> bool:
        return self._handle is not None

    def acquire(self) -> SubscriptionHandle:
        self.release()
        self._handle = self.source.subscribe(self._on_metadata)
        return self._handle

    def release(self) -> Optional[SubscriptionHandle]:
        """Release the live handle, if any, and return it."""
        handle, self._handle = self._handle, None
        if handle is not None:
            self.source.unsubscribe(handle)
        return handle
