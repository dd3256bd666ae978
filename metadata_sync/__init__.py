"""Now-playing synchronization engine for radio relay channels.

Main Components:
    - MetadataSource: Pull (polling) and push (event stream) metadata transports
    - TrackSynchronizer: Current track and bounded history per channel
    - PlaybackController: Play/pause/volume state machine gating the subscription
    - MpvTransport: Audio output through an mpv process

Example:
    >>> from metadata_sync import create_controller, get_config
    >>> controller = create_controller(get_config(), "chip")
"""

from metadata_sync.config import (
    ChannelConfig,
    PullTransport,
    PushTransport,
    SyncConfig,
    get_config,
)
from metadata_sync.controller import PlaybackController, create_controller
from metadata_sync.detector import Detection, detect
from metadata_sync.errors import (
    ChannelNotFound,
    ParseError,
    PlaybackRejected,
    SyncError,
    TransportError,
)
from metadata_sync.history import HistoryLedger
from metadata_sync.models import HistoryEntry, PlaybackState, PlaybackStatus, Track
from metadata_sync.sources import (
    MetadataSource,
    PullSource,
    PushSource,
    ReconnectPolicy,
    SubscriptionHandle,
    SubscriptionScope,
    build_source,
)
from metadata_sync.synchronizer import TrackSynchronizer
from metadata_sync.transport import AudioTransport, MpvTransport
from metadata_sync.volume_store import VolumeStore

__version__ = "1.0.0"
__all__ = [
    "AudioTransport",
    "ChannelConfig",
    "ChannelNotFound",
    "Detection",
    "HistoryEntry",
    "HistoryLedger",
    "MetadataSource",
    "MpvTransport",
    "ParseError",
    "PlaybackController",
    "PlaybackRejected",
    "PlaybackState",
    "PlaybackStatus",
    "PullSource",
    "PullTransport",
    "PushSource",
    "PushTransport",
    "ReconnectPolicy",
    "SubscriptionHandle",
    "SubscriptionScope",
    "SyncConfig",
    "SyncError",
    "Track",
    "TrackSynchronizer",
    "TransportError",
    "VolumeStore",
    "create_controller",
    "detect",
    "get_config",
]
