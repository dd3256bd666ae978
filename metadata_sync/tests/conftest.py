"""Shared fixtures for metadata_sync tests."""

import asyncio
from unittest.mock import Mock

import httpx
import pytest

from metadata_sync.config import ChannelConfig, PullTransport, PushTransport
from metadata_sync.errors import PlaybackRejected
from metadata_sync.sources import MetadataSource
from metadata_sync.synchronizer import TrackSynchronizer
from metadata_sync.transport import AudioTransport
from metadata_sync.volume_store import VolumeStore


class FakeTransport(AudioTransport):
    """Audio transport double that records calls and can refuse to start."""

    def __init__(self, reject: bool = False):
        super().__init__()
        self.reject = reject
        self.playing = False
        self.volume = None
        self.closed = False
        self.calls = []

    async def play(self):
        self.calls.append("play")
        if self.reject:
            raise PlaybackRejected("autoplay blocked")
        self.playing = True

    async def pause(self):
        self.calls.append("pause")
        self.playing = False

    async def set_volume(self, volume):
        self.volume = volume

    async def close(self):
        self.calls.append("close")
        self.closed = True

    def end(self):
        self._emit_ended()

    def fail(self, error):
        self._emit_error(error)


class StubSource(MetadataSource):
    """Metadata source whose subscriptions only deliver what tests push."""

    kind = "stub"

    def __init__(self, channel, initial=None):
        super().__init__(channel)
        self.initial = initial
        self.handles = []
        self._callbacks = {}

    def subscribe(self, on_metadata):
        handle = super().subscribe(on_metadata)
        self.handles.append(handle)
        self._callbacks[handle] = on_metadata
        return handle

    async def fetch_once(self):
        return self.initial

    async def _run(self, handle, on_metadata):
        await asyncio.Event().wait()

    def push(self, handle, raw):
        self._deliver(handle, self._callbacks[handle], raw)


@pytest.fixture
def pull_channel():
    """Fixture to provide a polled channel."""
    return ChannelConfig(
        name="chip",
        endpoint="https://relay.test/chip",
        transport=PullTransport(interval=0.01),
    )


@pytest.fixture
def push_channel():
    """Fixture to provide a push channel."""
    return ChannelConfig(
        name="vapor",
        endpoint="https://relay.test/vapor",
        transport=PushTransport(path="/live"),
    )


@pytest.fixture
def mock_metrics():
    """Fixture to provide a metrics double."""
    return Mock()


@pytest.fixture
def mock_client_factory():
    """Build a client factory serving responses from ``handler``."""

    def build(handler):
        transport = httpx.MockTransport(handler)

        def factory(**kwargs):
            return httpx.AsyncClient(transport=transport, **kwargs)

        return factory

    return build


@pytest.fixture
def fake_transport():
    return FakeTransport()


@pytest.fixture
def rejecting_transport():
    return FakeTransport(reject=True)


@pytest.fixture
def stub_source_factory():
    """Build a StubSource for a channel."""
    return StubSource


@pytest.fixture
def volume_store(tmp_path):
    return VolumeStore(tmp_path / "state" / "volume.json")


@pytest.fixture
def synchronizer():
    return TrackSynchronizer("chip")
