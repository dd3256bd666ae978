"""Prometheus metrics for metadata sync and the relay services."""

import logging
from typing import Optional

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

logger = logging.getLogger(__name__)

# Gauge values for relay_playback_status
PLAYBACK_STATUS_VALUES = {
    "playing": 1.0,
    "paused": 0.5,
    "idle": 0.0,
    "errored": 0.0,
}


class SyncMetrics:
    """Prometheus metrics exporter for now-playing synchronization.

    Provides counters for track changes and recovered failures, a gauge for
    per-channel playback status, and a histogram of metadata fetch latency.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """Initialize Prometheus metrics.

        Args:
            registry: Registry to register collectors with. Defaults to the
                global registry.
        """
        self.registry = registry if registry is not None else REGISTRY

        # Counters
        self.track_changes_total = Counter(
            "relay_track_changes_total",
            "Total number of detected track changes",
            ["channel"],
            registry=self.registry,
        )

        self.metadata_errors_total = Counter(
            "relay_metadata_errors_total",
            "Total number of recovered metadata errors",
            ["channel", "kind"],  # transport, parse
            registry=self.registry,
        )

        self.push_reconnects_total = Counter(
            "relay_push_reconnects_total",
            "Total number of push channel reconnection attempts",
            ["channel"],
            registry=self.registry,
        )

        self.playback_rejections_total = Counter(
            "relay_playback_rejections_total",
            "Total number of rejected playback starts",
            ["channel"],
            registry=self.registry,
        )

        self.status_requests_total = Counter(
            "relay_status_requests_total",
            "Total number of status passthrough requests",
            ["channel", "outcome"],  # ok, not_found, upstream_error
            registry=self.registry,
        )

        # Gauges
        self.playback_status = Gauge(
            "relay_playback_status",
            "Playback status (1=playing, 0.5=paused, 0=idle)",
            ["channel"],
            registry=self.registry,
        )

        # Histograms
        self.metadata_fetch_seconds = Histogram(
            "relay_metadata_fetch_seconds",
            "Metadata fetch duration in seconds",
            buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
            registry=self.registry,
        )

        logger.debug("Prometheus metrics initialized")

    def record_track_change(self, channel: str) -> None:
        self.track_changes_total.labels(channel=channel).inc()

    def record_metadata_error(self, channel: str, kind: str) -> None:
        """Increment the recovered-error counter.

        Args:
            channel: Channel name
            kind: Error kind (transport, parse)
        """
        self.metadata_errors_total.labels(channel=channel, kind=kind).inc()

    def record_push_reconnect(self, channel: str) -> None:
        self.push_reconnects_total.labels(channel=channel).inc()

    def record_playback_rejected(self, channel: str) -> None:
        self.playback_rejections_total.labels(channel=channel).inc()

    def record_status_request(self, channel: str, outcome: str) -> None:
        self.status_requests_total.labels(channel=channel, outcome=outcome).inc()

    def update_playback_status(self, channel: str, status: str) -> None:
        """Update the playback status gauge.

        Args:
            channel: Channel name
            status: Playback status value (playing, paused, idle, errored)
        """
        self.playback_status.labels(channel=channel).set(PLAYBACK_STATUS_VALUES.get(status, 0.0))

    def observe_fetch(self, duration_seconds: float) -> None:
        self.metadata_fetch_seconds.observe(duration_seconds)

    def get_metrics(self) -> bytes:
        """Get metrics in Prometheus text format.

        Returns:
            Metrics in Prometheus exposition format
        """
        return generate_latest(self.registry)


class RelayMetrics:
    """Prometheus metrics exporter for the relay metadata service."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry if registry is not None else REGISTRY

        self.updates_published_total = Counter(
            "relay_metadata_updates_published_total",
            "Total number of metadata snapshots published",
            registry=self.registry,
        )

        self.stream_reconnects_total = Counter(
            "relay_stream_reconnects_total",
            "Total number of source stream reconnections",
            registry=self.registry,
        )

        self.live_subscribers = Gauge(
            "relay_live_subscribers",
            "Number of connected live event-stream subscribers",
            registry=self.registry,
        )

        self.dropped_subscribers_total = Counter(
            "relay_live_subscribers_dropped_total",
            "Total number of live subscribers dropped for falling behind",
            registry=self.registry,
        )

    def record_published(self) -> None:
        self.updates_published_total.inc()

    def record_stream_reconnect(self) -> None:
        self.stream_reconnects_total.inc()

    def set_live_subscribers(self, count: int) -> None:
        self.live_subscribers.set(count)

    def record_dropped_subscriber(self) -> None:
        self.dropped_subscribers_total.inc()

    def get_metrics(self) -> bytes:
        return generate_latest(self.registry)
