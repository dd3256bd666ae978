"""Configuration management for the metadata sync engine.

Loads channel and engine settings from environment variables with
validation and defaults.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Union


@dataclass(frozen=True)
class PullTransport:
    """Periodic request/response polling of ``{endpoint}/metadata``."""

    interval: float = 5.0
    kind: str = field(default="pull", init=False)


@dataclass(frozen=True)
class PushTransport:
    """Server-push event stream at ``{endpoint}{path}``."""

    path: str = "/live"
    kind: str = field(default="push", init=False)


MetadataTransport = Union[PullTransport, PushTransport]

# Transport used when a channel does not configure one explicitly.
DEFAULT_TRANSPORTS: Dict[str, str] = {
    "chip": "pull",
    "vapor": "push",
}

DEFAULT_PUBLIC_BASE = "https://krelez.ruohki.dev"


@dataclass(frozen=True)
class ChannelConfig:
    """Configuration for one independently playable relay."""

    name: str
    endpoint: str
    transport: MetadataTransport = PullTransport()

    @property
    def metadata_url(self) -> str:
        return f"{self.endpoint}/metadata"

    @property
    def live_url(self) -> str:
        path = self.transport.path if isinstance(self.transport, PushTransport) else "/live"
        return f"{self.endpoint}{path}"

    @property
    def stream_urls(self) -> List[str]:
        """Audio sources in preference order (lossless first)."""
        return [f"{self.endpoint}/stream", f"{self.endpoint}/stream.mp3"]


@dataclass
class SyncConfig:
    """Configuration for the sync engine and its playback controller."""

    channels: Dict[str, ChannelConfig]

    # History
    history_capacity: int = 3

    # Persisted client state
    volume_store_path: Path = Path("~/.local/state/relay-now-playing/volume.json")

    # Audio transport
    mpv_path: str = "mpv"
    playback_start_timeout: float = 15.0
    tick_interval: float = 1.0

    # Push reconnection
    push_reconnect_max_attempts: int = 5
    push_reconnect_base_delay: float = 1.0
    push_reconnect_max_delay: float = 30.0

    # Logging
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "SyncConfig":
        """Load configuration from environment variables.

        Returns:
            SyncConfig: Configuration instance with values from environment.

        Raises:
            ValueError: If a channel transport or a numeric value is invalid.
        """
        names = [
            name.strip()
            for name in os.getenv("RELAY_CHANNELS", "chip,vapor").split(",")
            if name.strip()
        ]

        channels: Dict[str, ChannelConfig] = {}
        for name in names:
            channels[name] = _channel_from_env(name)

        return cls(
            channels=channels,
            history_capacity=int(os.getenv("HISTORY_CAPACITY", "3")),
            volume_store_path=Path(
                os.getenv("VOLUME_STORE_PATH", "~/.local/state/relay-now-playing/volume.json")
            ).expanduser(),
            mpv_path=os.getenv("MPV_PATH", "mpv"),
            playback_start_timeout=float(os.getenv("PLAYBACK_START_TIMEOUT", "15.0")),
            tick_interval=float(os.getenv("TICK_INTERVAL", "1.0")),
            push_reconnect_max_attempts=int(os.getenv("PUSH_RECONNECT_MAX_ATTEMPTS", "5")),
            push_reconnect_base_delay=float(os.getenv("PUSH_RECONNECT_BASE_DELAY", "1.0")),
            push_reconnect_max_delay=float(os.getenv("PUSH_RECONNECT_MAX_DELAY", "30.0")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )

    def get_channel(self, name: str) -> ChannelConfig:
        """Look up a configured channel.

        Raises:
            KeyError: If the channel is not configured.
        """
        try:
            return self.channels[name]
        except KeyError:
            raise KeyError(
                f"Unknown channel '{name}'. Configured: {', '.join(self.channels) or 'none'}"
            ) from None

    def validate(self) -> None:
        """Validate configuration values.

        Raises:
            ValueError: If configuration values are invalid.
        """
        if not self.channels:
            raise ValueError("At least one channel must be configured")

        for name, channel in self.channels.items():
            if name != channel.name:
                raise ValueError(f"Channel key '{name}' does not match name '{channel.name}'")
            if not channel.endpoint.startswith(("http://", "https://")):
                raise ValueError(
                    f"Invalid endpoint for channel '{name}': {channel.endpoint}"
                )
            if isinstance(channel.transport, PullTransport) and channel.transport.interval <= 0:
                raise ValueError(
                    f"Poll interval for channel '{name}' must be positive, "
                    f"got {channel.transport.interval}"
                )
            if isinstance(channel.transport, PushTransport) and not channel.transport.path.startswith("/"):
                raise ValueError(
                    f"Live path for channel '{name}' must start with '/': {channel.transport.path}"
                )

        if self.history_capacity < 1:
            raise ValueError(f"history_capacity must be >= 1, got {self.history_capacity}")

        if self.playback_start_timeout <= 0:
            raise ValueError(
                f"playback_start_timeout must be positive, got {self.playback_start_timeout}"
            )

        if self.tick_interval <= 0:
            raise ValueError(f"tick_interval must be positive, got {self.tick_interval}")

        if self.push_reconnect_max_attempts < 0:
            raise ValueError(
                f"push_reconnect_max_attempts must be >= 0, "
                f"got {self.push_reconnect_max_attempts}"
            )

        if self.push_reconnect_base_delay <= 0 or self.push_reconnect_max_delay <= 0:
            raise ValueError("Push reconnect delays must be positive")

        valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if self.log_level not in valid_log_levels:
            raise ValueError(
                f"Invalid log_level: {self.log_level}. Must be one of {valid_log_levels}"
            )


def _channel_from_env(name: str) -> ChannelConfig:
    """Build one channel's configuration from ``<NAME>_*`` variables."""
    prefix = name.upper().replace("-", "_")

    endpoint = os.getenv(f"{prefix}_ENDPOINT", f"{DEFAULT_PUBLIC_BASE}/{name}").rstrip("/")
    kind = os.getenv(f"{prefix}_TRANSPORT", DEFAULT_TRANSPORTS.get(name, "pull")).lower()

    transport: MetadataTransport
    if kind == "pull":
        transport = PullTransport(interval=float(os.getenv(f"{prefix}_POLL_INTERVAL", "5.0")))
    elif kind == "push":
        transport = PushTransport(path=os.getenv(f"{prefix}_LIVE_PATH", "/live"))
    else:
        raise ValueError(
            f"Invalid transport '{kind}' for channel '{name}'. Must be one of: pull, push"
        )

    return ChannelConfig(name=name, endpoint=endpoint, transport=transport)


def get_config(channels: Optional[List[str]] = None) -> SyncConfig:
    """Get validated engine configuration from environment.

    Args:
        channels: Optional subset of channel names to keep.

    Returns:
        SyncConfig instance
    """
    config = SyncConfig.from_env()
    if channels:
        config.channels = {name: config.get_channel(name) for name in channels}
    config.validate()
    return config
