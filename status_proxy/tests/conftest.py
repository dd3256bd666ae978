"""Shared fixtures for status proxy tests."""

import httpx
import pytest
from fastapi.testclient import TestClient
from prometheus_client import CollectorRegistry

from monitoring.metrics import SyncMetrics
from status_proxy.app import create_app
from status_proxy.config import ChannelStatusSource, Settings

VAPOR_STATUS_URL = "https://cast.test/status-json.xsl"


@pytest.fixture
def status_document():
    """Icecast aggregate status with three mounts."""
    return {
        "icestats": {
            "admin": "ops@relay.test",
            "host": "cast.test",
            "source": [
                {
                    "server_name": "Lofi Radio",
                    "listeners": 3,
                    "listenurl": "http://cast.test:8000/lofi",
                },
                {
                    "server_name": "Vaporwave Radio",
                    "listeners": 12,
                    "title": "Macintosh Plus - Floral Shoppe",
                    "listenurl": "http://cast.test:8000/vapor",
                },
                {
                    "server_name": "Jazz Radio",
                    "listeners": 0,
                    "listenurl": "http://cast.test:8000/jazz",
                },
            ],
        }
    }


@pytest.fixture
def settings():
    return Settings(
        channels={
            "vapor": ChannelStatusSource(
                status_url=VAPOR_STATUS_URL,
                source_name="Vaporwave Radio",
                public_listen_url="https://relay.test/vapor/stream",
            )
        },
    )


@pytest.fixture
def metrics():
    return SyncMetrics(CollectorRegistry())


@pytest.fixture
def make_client(settings, metrics):
    """Build a TestClient whose upstream requests go to ``handler``."""

    def build(handler, **kwargs):
        requested = []

        def recording_handler(request):
            requested.append(request)
            return handler(request)

        def client_factory(**client_kwargs):
            return httpx.AsyncClient(
                transport=httpx.MockTransport(recording_handler), **client_kwargs
            )

        app = create_app(settings, client_factory=client_factory, metrics=metrics)
        client = TestClient(app, **kwargs)
        client.requested = requested
        return client

    return build
