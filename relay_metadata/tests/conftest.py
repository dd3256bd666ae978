"""Shared fixtures for relay metadata tests."""

import struct
from unittest.mock import AsyncMock, MagicMock, Mock

import pytest

from relay_metadata.config import ProbeConfig
from relay_metadata.processor import Broadcaster, MetadataPublisher
from relay_metadata.vorbis import COMMENT_HEADER_MAGIC


def build_comment_header(comments, vendor="Xiph.Org libVorbis I 20200704"):
    """Encode a Vorbis comment header packet."""
    vendor_bytes = vendor.encode("utf-8")
    packet = COMMENT_HEADER_MAGIC
    packet += struct.pack("<I", len(vendor_bytes)) + vendor_bytes
    packet += struct.pack("<I", len(comments))
    for comment in comments:
        data = comment.encode("utf-8")
        packet += struct.pack("<I", len(data)) + data
    return packet + b"\x01"


@pytest.fixture
def comment_header():
    """Fixture to provide the comment header encoder."""
    return build_comment_header


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def mock_metrics():
    """Fixture to provide mock relay metrics."""
    return Mock()


@pytest.fixture
def broadcaster(mock_metrics):
    return Broadcaster(queue_size=4, metrics=mock_metrics)


@pytest.fixture
def publisher(broadcaster, clock, mock_metrics):
    return MetadataPublisher(broadcaster, min_interval=5.0, clock=clock, metrics=mock_metrics)


@pytest.fixture
def probe_config():
    return ProbeConfig(stream_url="http://relay.test/chip.ogg", buffer_limit=4096, retry_delay=0.01)


@pytest.fixture
def mock_session_factory():
    """Build a session factory whose stream yields ``chunks``."""

    def build(chunks, status=200):
        async def iter_chunked(size):
            for chunk in chunks:
                yield chunk

        mock_response = MagicMock()
        mock_response.status = status
        mock_response.content.iter_chunked = iter_chunked
        mock_response.__aenter__ = AsyncMock(return_value=mock_response)
        mock_response.__aexit__ = AsyncMock(return_value=None)

        mock_session = MagicMock()
        mock_session.get = MagicMock(return_value=mock_response)
        mock_session.__aenter__ = AsyncMock(return_value=mock_session)
        mock_session.__aexit__ = AsyncMock(return_value=None)

        return MagicMock(return_value=mock_session)

    return build
