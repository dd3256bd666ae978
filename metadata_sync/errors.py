"""Error taxonomy for metadata synchronization and playback."""

from typing import Optional


class SyncError(Exception):
    """Base class for all engine errors."""

    def __init__(self, message: str, channel: Optional[str] = None):
        super().__init__(message)
        self.channel = channel


class TransportError(SyncError):
    """Fetch or connection failure on the metadata path."""


class ParseError(SyncError):
    """Malformed metadata payload."""


class PlaybackRejected(SyncError):
    """The audio transport refused to start or resume."""


class ChannelNotFound(SyncError):
    """Upstream status document has no entry for the requested source."""
