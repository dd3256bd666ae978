"""Tests for track change detection."""

import pytest

from metadata_sync.detector import detect
from metadata_sync.models import Track


class TestTrackFromRaw:
    """Test Track.from_raw validation."""

    def test_valid_payload(self):
        """Test a payload with artist and title."""
        track = Track.from_raw({"artist": "Chipzel", "title": "Focus", "album": "Spectrum"})
        assert track == Track(artist="Chipzel", title="Focus")

    @pytest.mark.parametrize(
        "raw",
        [
            None,
            [],
            "Chipzel - Focus",
            {},
            {"artist": "Chipzel"},
            {"title": "Focus"},
            {"artist": "", "title": "Focus"},
            {"artist": "Chipzel", "title": ""},
            {"artist": 42, "title": "Focus"},
            {"artist": "Chipzel", "title": None},
        ],
    )
    def test_invalid_payloads(self, raw):
        """Test that anything short of artist and title is not a track."""
        assert Track.from_raw(raw) is None

    def test_label(self):
        """Test display label puts the title first."""
        assert Track(artist="Macintosh Plus", title="Floral Shoppe").label == (
            "Floral Shoppe - Macintosh Plus"
        )


class TestDetect:
    """Test detect function."""

    def test_first_track_is_a_change(self):
        """Test first valid payload is reported as changed."""
        result = detect({"artist": "A", "title": "X"}, None)

        assert result.changed is True
        assert result.track == Track("A", "X")
        assert result.new_id == ("A", "X")

    def test_repeated_payload_changes_once(self):
        """Test feeding the same payload N times changes exactly once."""
        last_id = None
        changes = 0
        for _ in range(10):
            result = detect({"artist": "A", "title": "X"}, last_id)
            if result.changed:
                changes += 1
            last_id = result.new_id

        assert changes == 1

    def test_different_track_is_a_change(self):
        """Test a new title from the same artist is a change."""
        result = detect({"artist": "A", "title": "Y"}, ("A", "X"))

        assert result.changed is True
        assert result.new_id == ("A", "Y")

    def test_invalid_payload_keeps_last_id(self):
        """Test an off-air payload is ignored."""
        result = detect({"artist": "", "title": ""}, ("A", "X"))

        assert result.changed is False
        assert result.track is None
        assert result.new_id == ("A", "X")

    def test_identity_is_not_concatenation(self):
        """Test "A"+"BC" and "AB"+"C" are different tracks."""
        first = detect({"artist": "A", "title": "BC"}, None)
        second = detect({"artist": "AB", "title": "C"}, first.new_id)

        assert second.changed is True
