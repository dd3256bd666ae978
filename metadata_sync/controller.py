"""Playback controller: one channel's play/pause/volume state machine.

States move ``idle -> playing <-> paused``; an end-of-stream or transport
failure passes through ``errored`` and settles back at ``idle``. The
metadata subscription is live exactly while the controller is playing.
"""

import asyncio
import logging
import math
from typing import Callable, List, Optional

from monitoring.metrics import SyncMetrics

from .config import ChannelConfig, SyncConfig
from .errors import PlaybackRejected
from .models import PlaybackState, PlaybackStatus
from .sources import ClientFactory, MetadataSource, SubscriptionScope, build_source
from .synchronizer import TrackSynchronizer
from .transport import AudioTransport, MpvTransport
from .volume_store import DEFAULT_VOLUME, VolumeStore

logger = logging.getLogger(__name__)

StateListener = Callable[[PlaybackState], None]


class PlaybackController:
    """Coordinates the audio transport, metadata subscription and tick timer."""

    def __init__(
        self,
        channel: ChannelConfig,
        transport: AudioTransport,
        source: MetadataSource,
        synchronizer: TrackSynchronizer,
        volume_store: Optional[VolumeStore] = None,
        metrics: Optional[SyncMetrics] = None,
        tick_interval: float = 1.0,
    ):
        """Initialize the controller.

        Args:
            channel: Channel configuration.
            transport: Audio output.
            source: Metadata source for the channel.
            synchronizer: Receives records from the active subscription.
            volume_store: Persisted volume preference. Volume is not
                persisted when omitted.
            metrics: Optional metrics exporter.
            tick_interval: Seconds per elapsed-time increment.
        """
        self.channel = channel
        self.transport = transport
        self.source = source
        self.synchronizer = synchronizer
        self.volume_store = volume_store
        self.tick_interval = tick_interval
        self._metrics = metrics

        volume = volume_store.load(channel.name) if volume_store else DEFAULT_VOLUME
        self.state = PlaybackState(volume=volume)

        self._scope = SubscriptionScope(source, synchronizer.ingest)
        self._lock = asyncio.Lock()
        self._tick_task: Optional[asyncio.Task] = None
        self._listeners: List[StateListener] = []

        transport.set_event_handlers(self.handle_ended, self.handle_error)
        self._publish_status()

    @property
    def status(self) -> PlaybackStatus:
        return self.state.status

    @property
    def is_playing(self) -> bool:
        return self.state.status == PlaybackStatus.PLAYING

    @property
    def subscription(self):
        """The live subscription handle, or None when not playing."""
        return self._scope.handle

    def add_listener(self, listener: StateListener) -> None:
        """Register a callback run after every state change and tick."""
        self._listeners.append(listener)

    async def load_initial_metadata(self) -> bool:
        """Fetch the channel's current track once, outside any subscription.

        Returns:
            bool: True if the fetch produced a new current track.
        """
        raw = await self.source.fetch_once()
        if raw is None:
            return False
        return self.synchronizer.apply(raw)

    async def play(self) -> bool:
        """Start or resume playback.

        A refused start is logged and leaves the controller idle; it is
        never raised to the caller.

        Returns:
            bool: True if the controller is now playing.
        """
        async with self._lock:
            if self.state.status == PlaybackStatus.PLAYING:
                handle = self._scope.handle
                if handle is None or handle.closed:
                    logger.info(f"[{self.channel.name}] Metadata subscription lost, resubscribing")
                    self.synchronizer.attach(self._scope.acquire())
                return True

            resuming = self.state.status == PlaybackStatus.PAUSED
            try:
                await self.transport.set_volume(self.state.effective_volume)
                await self.transport.play()
            except PlaybackRejected as e:
                logger.warning(f"[{self.channel.name}] Playback rejected: {e}")
                if self._metrics:
                    self._metrics.record_playback_rejected(self.channel.name)
                self.state.elapsed_seconds = 0
                self._set_status(PlaybackStatus.IDLE)
                return False

            handle = self._scope.acquire()
            self.synchronizer.attach(handle)
            self._start_tick()
            self._set_status(PlaybackStatus.PLAYING)
            logger.info(
                f"[{self.channel.name}] {'Resumed' if resuming else 'Started'} playback",
                extra={"channel": self.channel.name, "event": "playback_started"},
            )
            return True

    async def pause(self) -> None:
        """Pause output. Elapsed time, current track and history are kept."""
        async with self._lock:
            if self.state.status != PlaybackStatus.PLAYING:
                return

            self._leave_playing()
            self._set_status(PlaybackStatus.PAUSED)
            try:
                await self.transport.pause()
            except PlaybackRejected as e:
                logger.warning(f"[{self.channel.name}] Transport failed to pause: {e}")
            logger.info(f"[{self.channel.name}] Paused at {self.state.elapsed_seconds}s")

    async def toggle(self) -> bool:
        """Pause when playing, otherwise play.

        Returns:
            bool: True if the controller is now playing.
        """
        if self.is_playing:
            await self.pause()
            return False
        return await self.play()

    def handle_ended(self) -> None:
        """Audio transport reached the end of the stream."""
        self._terminate("stream ended")

    def handle_error(self, error: Exception) -> None:
        """Audio transport failed mid-stream."""
        self._terminate(f"stream error: {error}")

    async def set_volume(self, volume: float) -> float:
        """Set and persist the volume, clamped to [0, 1].

        Mute is left untouched; a muted controller stays silent.

        Returns:
            float: The stored volume.

        Raises:
            ValueError: If the volume is not a finite number.
        """
        volume = float(volume)
        if not math.isfinite(volume):
            raise ValueError(f"Volume must be a finite number, got {volume}")
        volume = min(max(volume, 0.0), 1.0)
        self.state.volume = volume
        if self.volume_store:
            self.volume_store.save(self.channel.name, volume)
        await self._apply_volume()
        self._notify()
        return volume

    async def toggle_mute(self) -> bool:
        """Flip mute without changing the stored volume.

        Returns:
            bool: The new muted flag.
        """
        self.state.muted = not self.state.muted
        await self._apply_volume()
        self._notify()
        return self.state.muted

    async def close(self) -> None:
        """Release the subscription, stop ticking and close the transport."""
        async with self._lock:
            self._leave_playing()
            self.state.elapsed_seconds = 0
            self._set_status(PlaybackStatus.IDLE)
            await self.transport.close()

    async def _apply_volume(self) -> None:
        try:
            await self.transport.set_volume(self.state.effective_volume)
        except PlaybackRejected as e:
            logger.warning(f"[{self.channel.name}] Could not apply volume: {e}")

    def _terminate(self, reason: str) -> None:
        if self.state.status not in (PlaybackStatus.PLAYING, PlaybackStatus.PAUSED):
            return

        logger.error(
            f"[{self.channel.name}] Playback stopped: {reason}",
            extra={"channel": self.channel.name, "event": "playback_stopped"},
        )
        self._leave_playing()
        self.state.elapsed_seconds = 0
        self._set_status(PlaybackStatus.ERRORED)
        self._set_status(PlaybackStatus.IDLE)

    def _leave_playing(self) -> None:
        handle = self._scope.release()
        if handle is not None:
            self.synchronizer.detach(handle)
        self._stop_tick()

    def _start_tick(self) -> None:
        self._stop_tick()
        self._tick_task = asyncio.create_task(
            self._tick(), name=f"playback-tick-{self.channel.name}"
        )

    def _stop_tick(self) -> None:
        if self._tick_task is not None:
            self._tick_task.cancel()
            self._tick_task = None

    async def _tick(self) -> None:
        while True:
            await asyncio.sleep(self.tick_interval)
            if self.state.status == PlaybackStatus.PLAYING:
                self.state.elapsed_seconds += 1
                self._notify()

    def _set_status(self, status: PlaybackStatus) -> None:
        self.state.status = status
        self._publish_status()
        self._notify()

    def _publish_status(self) -> None:
        if self._metrics:
            self._metrics.update_playback_status(self.channel.name, self.state.status.value)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self.state)
            except Exception as e:
                logger.error(f"[{self.channel.name}] State listener failed: {e}", exc_info=True)


def create_controller(
    config: SyncConfig,
    channel_name: str,
    transport: Optional[AudioTransport] = None,
    client_factory: Optional[ClientFactory] = None,
    metrics: Optional[SyncMetrics] = None,
) -> PlaybackController:
    """Wire a controller for one configured channel.

    Raises:
        KeyError: If the channel is not configured.
    """
    channel = config.get_channel(channel_name)
    volume_store = VolumeStore(config.volume_store_path)

    if transport is None:
        transport = MpvTransport(
            channel.stream_urls,
            mpv_path=config.mpv_path,
            start_timeout=config.playback_start_timeout,
            volume=volume_store.load(channel.name),
        )

    return PlaybackController(
        channel,
        transport,
        build_source(channel, config, client_factory=client_factory, metrics=metrics),
        TrackSynchronizer(channel.name, config.history_capacity, metrics=metrics),
        volume_store=volume_store,
        metrics=metrics,
        tick_interval=config.tick_interval,
    )
