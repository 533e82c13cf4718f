import pytest
from fastapi.testclient import TestClient

from API_LAYER.app import app
from services.intent_parser import RegexIntentParser
from services.session import SessionRegistry


@pytest.fixture
def registry(gateway, resolver, yield_source):
    # API tests must NOT hit a real chain
    return SessionRegistry(
        RegexIntentParser(confidence=0.9),
        resolver,
        gateway,
        yield_source,
        poll_interval=0.01,
        poll_timeout=1.0,
        gateway_timeout=1.0,
    )


@pytest.fixture
def client(registry):
    app.state.registry = registry
    with TestClient(app) as client:
        yield client
