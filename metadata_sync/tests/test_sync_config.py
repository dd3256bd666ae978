"""Tests for engine configuration."""

from pathlib import Path

import pytest

from metadata_sync.config import (
    ChannelConfig,
    PullTransport,
    PushTransport,
    SyncConfig,
    get_config,
)

ENV_VARS = [
    "RELAY_CHANNELS",
    "CHIP_ENDPOINT",
    "CHIP_TRANSPORT",
    "CHIP_POLL_INTERVAL",
    "VAPOR_ENDPOINT",
    "VAPOR_TRANSPORT",
    "VAPOR_LIVE_PATH",
    "HISTORY_CAPACITY",
    "VOLUME_STORE_PATH",
    "MPV_PATH",
    "PLAYBACK_START_TIMEOUT",
    "TICK_INTERVAL",
    "PUSH_RECONNECT_MAX_ATTEMPTS",
    "PUSH_RECONNECT_BASE_DELAY",
    "PUSH_RECONNECT_MAX_DELAY",
    "LOG_LEVEL",
]


@pytest.fixture
def clean_env(monkeypatch):
    """Remove engine variables from the environment."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestSyncConfigFromEnv:
    """Test SyncConfig.from_env."""

    def test_defaults(self, clean_env):
        """Test the two reference channels and their transports."""
        config = SyncConfig.from_env()

        assert list(config.channels) == ["chip", "vapor"]
        chip = config.channels["chip"]
        vapor = config.channels["vapor"]
        assert chip.endpoint == "https://krelez.ruohki.dev/chip"
        assert chip.transport == PullTransport(interval=5.0)
        assert vapor.transport == PushTransport(path="/live")
        assert config.history_capacity == 3
        assert config.playback_start_timeout == 15.0
        assert config.push_reconnect_max_attempts == 5
        assert config.volume_store_path == Path(
            "~/.local/state/relay-now-playing/volume.json"
        ).expanduser()

    def test_overrides(self, clean_env, monkeypatch):
        """Test environment overrides."""
        monkeypatch.setenv("RELAY_CHANNELS", "chip, lofi")
        monkeypatch.setenv("CHIP_TRANSPORT", "push")
        monkeypatch.setenv("CHIP_LIVE_PATH", "/events")
        monkeypatch.setenv("LOFI_ENDPOINT", "http://localhost:3000/")
        monkeypatch.setenv("LOFI_POLL_INTERVAL", "2.5")
        monkeypatch.setenv("HISTORY_CAPACITY", "5")
        monkeypatch.setenv("LOG_LEVEL", "debug")

        config = SyncConfig.from_env()

        assert config.channels["chip"].transport == PushTransport(path="/events")
        lofi = config.channels["lofi"]
        assert lofi.endpoint == "http://localhost:3000"
        assert lofi.transport == PullTransport(interval=2.5)
        assert config.history_capacity == 5
        assert config.log_level == "DEBUG"

    def test_invalid_transport(self, clean_env, monkeypatch):
        """Test unknown transport names are rejected."""
        monkeypatch.setenv("CHIP_TRANSPORT", "carrier-pigeon")

        with pytest.raises(ValueError, match="Invalid transport"):
            SyncConfig.from_env()

    def test_get_config_subset(self, clean_env):
        """Test selecting a subset of channels."""
        config = get_config(["vapor"])

        assert list(config.channels) == ["vapor"]

    def test_get_config_unknown_channel(self, clean_env):
        """Test selecting an unconfigured channel."""
        with pytest.raises(KeyError, match="Unknown channel 'jazz'"):
            get_config(["jazz"])


class TestSyncConfigValidate:
    """Test SyncConfig.validate."""

    @pytest.fixture
    def channel(self):
        return ChannelConfig(name="chip", endpoint="https://relay.test/chip")

    def test_valid(self, channel):
        """Test a valid configuration passes."""
        SyncConfig(channels={"chip": channel}).validate()

    def test_no_channels(self):
        """Test an empty channel list."""
        with pytest.raises(ValueError, match="At least one channel"):
            SyncConfig(channels={}).validate()

    def test_key_mismatch(self, channel):
        """Test a channel stored under another name."""
        with pytest.raises(ValueError, match="does not match"):
            SyncConfig(channels={"vapor": channel}).validate()

    def test_bad_endpoint(self):
        """Test non-HTTP endpoints."""
        channel = ChannelConfig(name="chip", endpoint="ftp://relay.test/chip")

        with pytest.raises(ValueError, match="Invalid endpoint"):
            SyncConfig(channels={"chip": channel}).validate()

    def test_non_positive_poll_interval(self):
        """Test zero poll interval."""
        channel = ChannelConfig(
            name="chip", endpoint="https://relay.test/chip", transport=PullTransport(interval=0)
        )

        with pytest.raises(ValueError, match="must be positive"):
            SyncConfig(channels={"chip": channel}).validate()

    def test_live_path_must_be_absolute(self):
        """Test relative live paths."""
        channel = ChannelConfig(
            name="vapor", endpoint="https://relay.test/vapor", transport=PushTransport(path="live")
        )

        with pytest.raises(ValueError, match="must start with '/'"):
            SyncConfig(channels={"vapor": channel}).validate()

    @pytest.mark.parametrize(
        "field,value,message",
        [
            ("history_capacity", 0, "history_capacity"),
            ("playback_start_timeout", 0, "playback_start_timeout"),
            ("tick_interval", -1, "tick_interval"),
            ("push_reconnect_max_attempts", -1, "push_reconnect_max_attempts"),
            ("push_reconnect_base_delay", 0, "delays must be positive"),
            ("log_level", "LOUD", "Invalid log_level"),
        ],
    )
    def test_invalid_values(self, channel, field, value, message):
        """Test numeric and enum bounds."""
        config = SyncConfig(channels={"chip": channel})
        setattr(config, field, value)

        with pytest.raises(ValueError, match=message):
            config.validate()

    def test_zero_reconnect_attempts_allowed(self, channel):
        """Test reconnection can be disabled."""
        SyncConfig(channels={"chip": channel}, push_reconnect_max_attempts=0).validate()
