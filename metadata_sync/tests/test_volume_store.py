"""Tests for persisted volume."""

import json

import pytest

from metadata_sync.volume_store import DEFAULT_VOLUME, VolumeStore


class TestVolumeStore:
    """Test VolumeStore class."""

    @pytest.fixture
    def path(self, tmp_path):
        return tmp_path / "nested" / "volume.json"

    def test_default_when_absent(self, path):
        """Test a missing file yields the default."""
        assert VolumeStore(path).load("chip") == DEFAULT_VOLUME == 0.7

    def test_save_then_load(self, path):
        """Test a saved value survives a new store instance."""
        VolumeStore(path).save("chip", 0.35)

        assert VolumeStore(path).load("chip") == 0.35

    def test_per_channel_keys(self, path):
        """Test channels are stored under their own key."""
        store = VolumeStore(path)
        store.save("chip", 0.2)
        store.save("vapor", 0.9)

        data = json.loads(path.read_text())
        assert data == {"chipPlayerVolume": "0.2", "vaporPlayerVolume": "0.9"}
        assert store.load("chip") == 0.2

    def test_last_write_wins(self, path):
        """Test concurrent writers overwrite each other."""
        VolumeStore(path).save("chip", 0.1)
        VolumeStore(path).save("chip", 0.8)

        assert VolumeStore(path).load("chip") == 0.8

    @pytest.mark.parametrize("raw", ["loud", "", None, [0.5], "1.5", "-0.1", "nan"])
    def test_unparseable_or_out_of_range(self, path, raw):
        """Test bad stored values fall back to the default."""
        path.parent.mkdir(parents=True)
        path.write_text(json.dumps({"chipPlayerVolume": raw}))

        assert VolumeStore(path).load("chip") == DEFAULT_VOLUME

    def test_numeric_value_accepted(self, path):
        """Test a number written by another tool is read."""
        path.parent.mkdir(parents=True)
        path.write_text(json.dumps({"chipPlayerVolume": 0.5}))

        assert VolumeStore(path).load("chip") == 0.5

    def test_corrupt_file(self, path):
        """Test an unreadable document is ignored and then replaced."""
        path.parent.mkdir(parents=True)
        path.write_text("{not json")
        store = VolumeStore(path)

        assert store.load("chip") == DEFAULT_VOLUME
        store.save("chip", 0.4)
        assert store.load("chip") == 0.4

    def test_non_object_document(self, path):
        """Test a JSON list is ignored."""
        path.parent.mkdir(parents=True)
        path.write_text("[1, 2]")

        assert VolumeStore(path).load("chip") == DEFAULT_VOLUME

    def test_write_failure_is_logged(self, tmp_path, caplog):
        """Test an unwritable location does not raise."""
        blocker = tmp_path / "file"
        blocker.write_text("")
        store = VolumeStore(blocker / "volume.json")

        store.save("chip", 0.4)

        assert "Could not persist volume" in caplog.text
