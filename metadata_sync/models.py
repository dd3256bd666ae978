"""Domain models for the now-playing synchronization engine."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple

# Raw metadata as delivered by a source: one decoded JSON object.
RawMetadata = Dict[str, Any]

# Structured identity of a track. Tuple comparison keeps "A"+"BC" and
# "AB"+"C" distinct.
TrackId = Tuple[str, str]


@dataclass(frozen=True)
class Track:
    """A track currently or previously broadcast on a channel."""

    artist: str
    title: str

    @property
    def track_id(self) -> TrackId:
        return (self.artist, self.title)

    @property
    def label(self) -> str:
        return f"{self.title} - {self.artist}"

    @classmethod
    def from_raw(cls, raw: Any) -> Optional["Track"]:
        """Build a track from a raw payload.

        Both ``artist`` and ``title`` must be present, string-typed and
        non-empty; anything else (an off-air channel, a placeholder event)
        is not a track.

        Args:
            raw: Decoded metadata payload.

        Returns:
            Track or None if the payload does not describe a track.
        """
        if not isinstance(raw, dict):
            return None

        artist = raw.get("artist")
        title = raw.get("title")
        if not isinstance(artist, str) or not isinstance(title, str):
            return None
        if not artist or not title:
            return None

        return cls(artist=artist, title=title)


@dataclass(frozen=True)
class HistoryEntry:
    """A superseded track and the (approximate) time it was archived."""

    track: Track
    started_at: datetime


class PlaybackStatus(str, Enum):
    """Playback controller states."""

    IDLE = "idle"
    PLAYING = "playing"
    PAUSED = "paused"
    ERRORED = "errored"


@dataclass
class PlaybackState:
    """Mutable playback state owned by a single controller."""

    status: PlaybackStatus = PlaybackStatus.IDLE
    volume: float = 0.7
    muted: bool = False
    elapsed_seconds: int = 0

    @property
    def effective_volume(self) -> float:
        """Output level after applying mute."""
        return 0.0 if self.muted else self.volume

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "volume": self.volume,
            "muted": self.muted,
            "elapsed_seconds": self.elapsed_seconds,
        }
