"""Configuration management for the relay metadata service."""

import os
from dataclasses import dataclass


@dataclass
class ProbeConfig:
    """Configuration for reading metadata out of an Ogg/Vorbis relay.

    Attributes:
        stream_url: Ogg/Vorbis stream to read
        host: HTTP bind address
        port: HTTP port
        retry_delay: Seconds to wait before reconnecting to the stream
        min_update_interval: Minimum seconds between published updates
        buffer_limit: Bytes of stream data kept for header scanning
        chunk_size: Bytes requested per read
        connect_timeout: Seconds allowed for connecting to the stream
        keepalive_interval: Seconds between event-stream keep-alive comments
        subscriber_queue_size: Updates buffered per live subscriber
    """

    stream_url: str = "http://79.120.11.40:8000/chiptune.ogg"
    host: str = "0.0.0.0"
    port: int = 3000
    retry_delay: float = 5.0
    min_update_interval: float = 5.0
    buffer_limit: int = 16384
    chunk_size: int = 4096
    connect_timeout: float = 10.0
    keepalive_interval: float = 30.0
    subscriber_queue_size: int = 100

    @classmethod
    def from_env(cls) -> "ProbeConfig":
        """Load configuration from environment variables.

        Returns:
            ProbeConfig: Configuration instance with values from environment
        """
        return cls(
            stream_url=os.getenv("STREAM_URL", "http://79.120.11.40:8000/chiptune.ogg"),
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "3000")),
            retry_delay=float(os.getenv("RETRY_DELAY", "5.0")),
            min_update_interval=float(os.getenv("MIN_UPDATE_INTERVAL", "5.0")),
            buffer_limit=int(os.getenv("BUFFER_LIMIT", "16384")),
            chunk_size=int(os.getenv("CHUNK_SIZE", "4096")),
            connect_timeout=float(os.getenv("CONNECT_TIMEOUT", "10.0")),
            keepalive_interval=float(os.getenv("KEEPALIVE_INTERVAL", "30.0")),
            subscriber_queue_size=int(os.getenv("SUBSCRIBER_QUEUE_SIZE", "100")),
        )

    def validate(self) -> None:
        """Validate configuration values.

        Raises:
            ValueError: If configuration is invalid
        """
        if not self.stream_url.startswith(("http://", "https://")):
            raise ValueError(f"Invalid stream_url: {self.stream_url}")

        if not (1 <= self.port <= 65535):
            raise ValueError(f"Invalid port: {self.port}")

        if self.retry_delay <= 0:
            raise ValueError(f"retry_delay must be positive, got {self.retry_delay}")

        if self.min_update_interval < 0:
            raise ValueError(
                f"min_update_interval must be >= 0, got {self.min_update_interval}"
            )

        if self.buffer_limit < 1024:
            raise ValueError(f"buffer_limit must be >= 1024, got {self.buffer_limit}")

        if self.chunk_size < 1:
            raise ValueError(f"chunk_size must be >= 1, got {self.chunk_size}")

        if self.keepalive_interval <= 0:
            raise ValueError(
                f"keepalive_interval must be positive, got {self.keepalive_interval}"
            )

        if self.subscriber_queue_size < 1:
            raise ValueError(
                f"subscriber_queue_size must be >= 1, got {self.subscriber_queue_size}"
            )
