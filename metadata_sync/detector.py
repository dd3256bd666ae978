"""Track change detection.

Decides whether a raw metadata payload is a genuinely new track or a
repeat of the one already known. Pull sources resend the same payload on
every tick, so identity comparison is the only thing standing between the
upstream and a history full of duplicates.
"""

from dataclasses import dataclass
from typing import Any, Optional

from .models import Track, TrackId


@dataclass(frozen=True)
class Detection:
    """Outcome of comparing one payload against the last seen track."""

    changed: bool
    track: Optional[Track]
    new_id: Optional[TrackId]


def detect(raw: Any, last_seen_id: Optional[TrackId]) -> Detection:
    """Compare a raw payload against the last seen track identity.

    Args:
        raw: Decoded metadata payload.
        last_seen_id: Identity of the current track, or None before the
            first successful fetch.

    Returns:
        Detection: ``changed`` is True only when the payload is a valid
        track whose identity differs from ``last_seen_id``.
    """
    track = Track.from_raw(raw)
    if track is None:
        return Detection(changed=False, track=None, new_id=last_seen_id)

    if track.track_id == last_seen_id:
        return Detection(changed=False, track=track, new_id=last_seen_id)

    return Detection(changed=True, track=track, new_id=track.track_id)
