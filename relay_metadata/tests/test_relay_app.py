"""Tests for the relay metadata endpoints and event stream."""

import json

import pytest
from fastapi import status
from fastapi.testclient import TestClient

from relay_metadata.app import KEEPALIVE_COMMENT, NO_METADATA, create_app, format_event, live_events
from relay_metadata.config import ProbeConfig
from relay_metadata.processor import Broadcaster, MetadataPublisher
from relay_metadata.vorbis import StreamMetadata


@pytest.fixture
def app():
    return create_app(ProbeConfig(), start_processor=False)


@pytest.fixture
def client(app):
    return TestClient(app)


def test_metadata_before_first_header(client):
    """Test 404 with a plain-text body until something is published."""
    response = client.get("/metadata")

    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.text == NO_METADATA


def test_metadata_after_publish(app, client):
    """Test the current snapshot is served as JSON."""
    app.state.publisher.offer(StreamMetadata(title="Focus", artist="Chipzel", last_update=7))

    response = client.get("/metadata")

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {
        "title": "Focus",
        "artist": "Chipzel",
        "album": None,
        "genre": None,
        "last_update": 7,
    }


def test_health(client):
    """Test the health endpoint."""
    response = client.get("/health")

    assert response.json() == {"status": "healthy", "has_metadata": False, "live_subscribers": 0}


def test_invalid_config_rejected():
    """Test configuration is validated when the app is built."""
    with pytest.raises(ValueError):
        create_app(ProbeConfig(stream_url="ftp://relay.test/chip.ogg"), start_processor=False)


def test_format_event_multiline():
    """Test each line becomes its own data field."""
    assert format_event("a\nb") == "data: a\ndata: b\n\n"


class TestLiveEvents:
    """Test the live event generator."""

    @pytest.mark.asyncio
    async def test_initial_placeholder_then_updates(self):
        """Test the stream opens with the current state and follows updates."""
        broadcaster = Broadcaster()
        publisher = MetadataPublisher(broadcaster, min_interval=0)
        events = live_events(publisher, broadcaster, keepalive_interval=5)

        assert await events.__anext__() == format_event(NO_METADATA)

        publisher.offer(StreamMetadata(title="Focus", artist="Chipzel"))
        event = await events.__anext__()

        assert json.loads(event[len("data: "):])["title"] == "Focus"
        await events.aclose()
        assert broadcaster.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_initial_snapshot(self):
        """Test late subscribers get the current snapshot first."""
        broadcaster = Broadcaster()
        publisher = MetadataPublisher(broadcaster, min_interval=0)
        publisher.offer(StreamMetadata(title="Focus", artist="Chipzel"))
        events = live_events(publisher, broadcaster, keepalive_interval=5)

        first = await events.__anext__()

        assert json.loads(first[len("data: "):])["artist"] == "Chipzel"
        await events.aclose()

    @pytest.mark.asyncio
    async def test_keepalive(self):
        """Test an idle stream emits keep-alive comments."""
        broadcaster = Broadcaster()
        events = live_events(MetadataPublisher(broadcaster), broadcaster, keepalive_interval=0.01)

        await events.__anext__()

        assert await events.__anext__() == KEEPALIVE_COMMENT
        await events.aclose()

    @pytest.mark.asyncio
    async def test_dropped_subscriber_stream_ends(self):
        """Test the stream closes once the subscriber falls behind."""
        broadcaster = Broadcaster(queue_size=1)
        publisher = MetadataPublisher(broadcaster, min_interval=0)
        events = live_events(publisher, broadcaster, keepalive_interval=5)
        await events.__anext__()

        broadcaster.publish(StreamMetadata(title="One"))
        broadcaster.publish(StreamMetadata(title="Two"))

        with pytest.raises(StopAsyncIteration):
            await events.__anext__()
        assert broadcaster.subscriber_count == 0
