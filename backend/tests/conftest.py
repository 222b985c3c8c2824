import os
import sys
from pathlib import Path

import pytest

# Add project root (2 levels up from tests/) to sys.path so tests can import 'app'
root = Path(__file__).resolve().parents[1]
if str(root) not in sys.path:
    sys.path.insert(0, str(root))

# Point the app at an in-memory database and a disabled metrics exporter
# before anything imports app.config.settings.
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["METRICS_ENABLED"] = "false"
os.environ.setdefault("OPENAI_API_KEY", "test-key")

from app.services.audio import AudioChunkRecorder
from app.services.connection import ConnectionManager
from app.services.translation import TranslationBridge, TranslationLogger

from tests.helpers import FakeClientChannel, FakeConnector, InMemorySessionStore


@pytest.fixture
def store():
    return InMemorySessionStore()


@pytest.fixture
def connector():
    return FakeConnector()


@pytest.fixture
def manager():
    return ConnectionManager()


@pytest.fixture
def translation_logger(store):
    return TranslationLogger(store=store)


@pytest.fixture
def chunk_recorder(store):
    return AudioChunkRecorder(store=store, enabled=True)


@pytest.fixture
def channel():
    return FakeClientChannel()


@pytest.fixture
def bridge_factory(connector):
    """Bridges that dial the fake provider instead of the network."""
    def factory(session_id, config, sink):
        return TranslationBridge(session_id, config, sink, connector=connector, api_key="test-key")
    return factory
