"""Tests for the presentation adapter."""

from datetime import datetime

import pytest

from metadata_sync.models import HistoryEntry, PlaybackState, PlaybackStatus, Track
from metadata_sync.presentation import (
    EMPTY_HISTORY_TEXT,
    LOADING_PLACEHOLDER,
    build_view,
    format_elapsed,
    marquee_window,
    needs_marquee,
    render_text,
    status_line,
    volume_percent,
)


class TestFormatting:
    """Test formatting helpers."""

    @pytest.mark.parametrize(
        "seconds,expected",
        [(0, "00:00"), (42, "00:42"), (61, "01:01"), (3599, "59:59"), (3600, "60:00")],
    )
    def test_format_elapsed(self, seconds, expected):
        """Test MM:SS formatting."""
        assert format_elapsed(seconds) == expected

    def test_status_line_playing(self):
        """Test playback time while playing."""
        state = PlaybackState(status=PlaybackStatus.PLAYING, elapsed_seconds=75)

        assert status_line(state) == "Playback time: 01:15"

    @pytest.mark.parametrize(
        "status", [PlaybackStatus.IDLE, PlaybackStatus.PAUSED, PlaybackStatus.ERRORED]
    )
    def test_status_line_not_playing(self, status):
        """Test ready text otherwise."""
        assert status_line(PlaybackState(status=status, elapsed_seconds=75)) == "Ready to play"

    def test_volume_percent(self):
        """Test percentage rounding."""
        assert volume_percent(0.7) == 70
        assert volume_percent(0.333) == 33
        assert volume_percent(1.0) == 100


class TestMarquee:
    """Test marquee helpers."""

    def test_short_label_fits(self):
        """Test no marquee and padding for short labels."""
        assert needs_marquee("Focus - Chipzel", 20) is False
        assert marquee_window("Focus - Chipzel", 20, 5) == "Focus - Chipzel     "

    def test_long_label_scrolls(self):
        """Test a long label scrolls and wraps with a gap."""
        label = "ABCDEFGHIJ"

        assert needs_marquee(label, 4) is True
        assert marquee_window(label, 4, 0) == "ABCD"
        assert marquee_window(label, 4, 8) == "IJ  "
        assert marquee_window(label, 4, 12) == " ABC"
        assert marquee_window(label, 4, 13) == "ABCD"

    def test_zero_width(self):
        """Test degenerate container width."""
        assert marquee_window("ABC", 0, 0) == ""
        assert needs_marquee("ABC", 0) is False


class TestBuildView:
    """Test build_view and render_text."""

    def test_loading_view(self):
        """Test placeholder before the first record."""
        view = build_view("chip", PlaybackState(), None)

        assert view.label == LOADING_PLACEHOLDER
        assert view.loading is True
        assert view.status_line == "Ready to play"
        assert view.volume_percent == 70
        assert view.history == ()
        assert EMPTY_HISTORY_TEXT in render_text(view)

    def test_playing_view(self):
        """Test a populated view."""
        state = PlaybackState(status=PlaybackStatus.PLAYING, volume=0.4, elapsed_seconds=5)
        history = (HistoryEntry(Track("A", "X"), datetime(2024, 5, 1, 21, 7, 59)),)

        view = build_view("vapor", state, Track("B", "Y"), history, width=5)

        assert view.label == "Y - B"
        assert view.playing is True
        assert view.marquee is False
        assert view.history[0].label == "X - A"
        assert view.history[0].time_text == "21:07"

        text = render_text(view)
        assert "[vapor] Y - B" in text
        assert "Playback time: 00:05" in text
        assert "Volume: 40%" in text
        assert "21:07  X - A" in text

    def test_muted_render(self):
        """Test muted volume display."""
        view = build_view("chip", PlaybackState(muted=True), Track("A", "X"))

        assert view.muted is True
        assert "Volume: muted" in render_text(view)
