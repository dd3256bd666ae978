"""Display-ready view of a channel's playback and track state."""

from dataclasses import dataclass
from typing import Optional, Tuple

from .models import HistoryEntry, PlaybackState, PlaybackStatus, Track

LOADING_PLACEHOLDER = "Loading..."
READY_TEXT = "Ready to play"
EMPTY_HISTORY_TEXT = "No history yet"
MARQUEE_GAP = "   "


@dataclass(frozen=True)
class HistoryRow:
    label: str
    time_text: str


@dataclass(frozen=True)
class NowPlayingView:
    """Everything a player surface renders for one channel."""

    channel: str
    label: str
    loading: bool
    status_line: str
    playing: bool
    volume_percent: int
    muted: bool
    marquee: bool
    history: Tuple[HistoryRow, ...]


def format_elapsed(seconds: int) -> str:
    """Format seconds as ``MM:SS``; minutes keep counting past 59."""
    minutes, secs = divmod(max(int(seconds), 0), 60)
    return f"{minutes:02d}:{secs:02d}"


def track_label(track: Optional[Track]) -> str:
    return track.label if track is not None else LOADING_PLACEHOLDER


def status_line(state: PlaybackState) -> str:
    if state.status == PlaybackStatus.PLAYING:
        return f"Playback time: {format_elapsed(state.elapsed_seconds)}"
    return READY_TEXT


def volume_percent(volume: float) -> int:
    return int(round(volume * 100))


def needs_marquee(label: str, width: int) -> bool:
    """True when the label does not fit in ``width`` character cells."""
    return width > 0 and len(label) > width


def marquee_window(label: str, width: int, offset: int) -> str:
    """Return the ``width``-wide slice of a label scrolled by ``offset``.

    Labels that fit are returned padded and unscrolled. Longer labels wrap
    around with a short gap so the scroll loops seamlessly.
    """
    if width <= 0:
        return ""
    if not needs_marquee(label, width):
        return label.ljust(width)

    loop = label + MARQUEE_GAP
    start = offset % len(loop)
    doubled = loop + loop
    return doubled[start:start + width]


def history_row(entry: HistoryEntry) -> HistoryRow:
    return HistoryRow(label=entry.track.label, time_text=entry.started_at.strftime("%H:%M"))


def build_view(
    channel: str,
    state: PlaybackState,
    current_track: Optional[Track],
    history: Tuple[HistoryEntry, ...] = (),
    width: int = 40,
) -> NowPlayingView:
    """Derive the view from controller state and synchronizer state.

    Args:
        channel: Channel name.
        state: Playback state.
        current_track: Current track, or None before the first record.
        history: Superseded tracks, most recent first.
        width: Label container width in character cells.
    """
    label = track_label(current_track)
    return NowPlayingView(
        channel=channel,
        label=label,
        loading=current_track is None,
        status_line=status_line(state),
        playing=state.status == PlaybackStatus.PLAYING,
        volume_percent=volume_percent(state.volume),
        muted=state.muted,
        marquee=needs_marquee(label, width),
        history=tuple(history_row(entry) for entry in history),
    )


def render_text(view: NowPlayingView) -> str:
    """Render a view as plain terminal text."""
    volume = "muted" if view.muted else f"{view.volume_percent}%"
    lines = [
        f"[{view.channel}] {view.label}",
        f"  {view.status_line} | Volume: {volume}",
        "  History:",
    ]
    if view.history:
        lines.extend(f"    {row.time_text}  {row.label}" for row in view.history)
    else:
        lines.append(f"    {EMPTY_HISTORY_TEXT}")
    return "\n".join(lines)
