"""Configuration management for the status proxy."""

from typing import Dict

from pydantic import BaseModel
from pydantic_settings import BaseSettings


class ChannelStatusSource(BaseModel):
    """Where a channel's status lives upstream and how it is published."""

    status_url: str
    source_name: str
    public_listen_url: str


DEFAULT_CHANNELS: Dict[str, ChannelStatusSource] = {
    "chip": ChannelStatusSource(
        status_url="http://79.120.11.40:8000/status-json.xsl",
        source_name="Chiptune Radio",
        public_listen_url="https://krelez.ruohki.dev/chip/stream",
    ),
    "vapor": ChannelStatusSource(
        status_url="https://cast.ruohki.services/status-json.xsl",
        source_name="Vaporwave Radio",
        public_listen_url="https://krelez.ruohki.dev/vapor/stream",
    ),
}


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    ``STATUS_PROXY_CHANNELS`` is a JSON object mapping channel names to
    ``{status_url, source_name, public_listen_url}``.
    """

    # Application
    app_name: str = "Relay Status Proxy"
    app_version: str = "1.0.0"
    debug: bool = False

    # Channels
    channels: Dict[str, ChannelStatusSource] = dict(DEFAULT_CHANNELS)

    # Upstream
    upstream_timeout: float = 10.0

    # CORS
    cors_origins: list[str] = ["*"]

    # Server
    host: str = "0.0.0.0"
    port: int = 9002

    class Config:
        """Pydantic config."""

        env_prefix = "STATUS_PROXY_"
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"
