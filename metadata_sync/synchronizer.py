"""Current track and history state for one channel."""

import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from monitoring.metrics import SyncMetrics

from .detector import detect
from .history import HistoryLedger
from .models import HistoryEntry, RawMetadata, Track, TrackId

logger = logging.getLogger(__name__)

# Archived entries are stamped slightly in the past so they always sort
# before the track that superseded them.
HISTORY_BACKDATE = timedelta(seconds=1)

TrackListener = Callable[[Track, Optional[HistoryEntry]], None]


class TrackSynchronizer:
    """Applies metadata records to a channel's current track and history.

    Records are accepted only from the handle currently attached; anything
    delivered for an older handle is discarded without touching state.
    """

    def __init__(
        self,
        channel: str,
        history_capacity: int = 3,
        clock: Optional[Callable[[], datetime]] = None,
        metrics: Optional[SyncMetrics] = None,
    ):
        """Initialize synchronizer state.

        Args:
            channel: Channel name (for logging and metrics).
            history_capacity: Number of superseded tracks to keep.
            clock: Returns the current local time. Defaults to ``datetime.now``.
            metrics: Optional metrics exporter.
        """
        self.channel = channel
        self.history = HistoryLedger(history_capacity)
        self.current_track: Optional[Track] = None
        self._last_seen_id: Optional[TrackId] = None
        self._active_handle: Optional[object] = None
        self._clock = clock or datetime.now
        self._metrics = metrics
        self._listeners: List[TrackListener] = []

    @property
    def last_seen_id(self) -> Optional[TrackId]:
        return self._last_seen_id

    @property
    def active_handle(self) -> Optional[object]:
        return self._active_handle

    def add_listener(self, listener: TrackListener) -> None:
        """Register a callback run on every genuine track change."""
        self._listeners.append(listener)

    def attach(self, handle: object) -> None:
        """Accept records from ``handle`` from now on."""
        self._active_handle = handle

    def detach(self, handle: Optional[object] = None) -> None:
        """Stop accepting records from ``handle`` (or from any handle)."""
        if handle is None or handle is self._active_handle:
            self._active_handle = None

    def ingest(self, handle: object, raw: RawMetadata) -> bool:
        """Apply a record delivered by a subscription.

        Args:
            handle: The subscription handle that produced the record.
            raw: Decoded metadata payload.

        Returns:
            bool: True if the record changed the current track.
        """
        if handle is not self._active_handle:
            logger.debug(f"[{self.channel}] Discarding record from stale handle {handle!r}")
            return False
        return self.apply(raw)

    def apply(self, raw: RawMetadata) -> bool:
        """Apply a record regardless of its origin.

        Used directly for the initial one-shot fetch.

        Returns:
            bool: True if the record changed the current track.
        """
        detection = detect(raw, self._last_seen_id)
        if not detection.changed or detection.track is None:
            return False

        archived: Optional[HistoryEntry] = None
        if self.current_track is not None:
            archived = self.history.record(self.current_track, self._clock() - HISTORY_BACKDATE)

        self.current_track = detection.track
        self._last_seen_id = detection.new_id

        logger.info(
            f"[{self.channel}] Now playing: {detection.track.artist} - {detection.track.title}",
            extra={"channel": self.channel, "event": "track_changed"},
        )
        if self._metrics:
            self._metrics.record_track_change(self.channel)

        for listener in list(self._listeners):
            try:
                listener(detection.track, archived)
            except Exception as e:
                logger.error(f"[{self.channel}] Track listener failed: {e}", exc_info=True)

        return True
