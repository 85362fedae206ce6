import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest


# Ensure local src/ package imports work without editable install.
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
for path in (SRC, ROOT):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))


from valora.core.config import ValoraConfig, SecurityConfig, ValidrConfig, reset_config
from valora.core.container import build_container
from valora.core.memory_model import Memory
from valora.events.event_bus import EventBus
from valora.events.plugin_manager import PluginManager
from valora.events.webhook_manager import RetryPolicy, WebhookManager
from valora.storage.memory_exporter import MemoryExporter
from valora.storage.memory_importer import ChatImportService
from valora.storage.memory_store import InMemoryMemoryStore

from tests.mocks import FakeSession, RecordingPlugin


TEST_API_KEY = "test-key"


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_configure(config):
    config.addinivalue_line(
        "markers",
        "slow: mark test as slow-running (use pytest -m 'not slow' to skip)"
    )


@pytest.fixture(autouse=True)
def _isolate_config(monkeypatch):
    """Keep VALORA_* variables from the developer shell out of tests."""
    import os

    for key in list(os.environ):
        if key.startswith("VALORA_") or key.startswith("VALIDR_"):
            monkeypatch.delenv(key, raising=False)
    reset_config()
    yield
    reset_config()


# =============================================================================
# Core Fixtures
# =============================================================================

@pytest.fixture
def store():
    return InMemoryMemoryStore()


@pytest.fixture
def http_session():
    """Fake aiohttp session answering 200 to every request."""
    return FakeSession()


@pytest.fixture
def webhook_manager(http_session):
    return WebhookManager(
        default_retry_policy=RetryPolicy(max_retries=3, backoff_ms=1, timeout_ms=1000),
        http_session=http_session,
    )


@pytest.fixture
def plugin_manager():
    return PluginManager()


@pytest.fixture
def event_bus(webhook_manager, plugin_manager):
    return EventBus(webhook_manager=webhook_manager, plugin_manager=plugin_manager)


@pytest.fixture
def importer(store, event_bus):
    return ChatImportService(store, event_bus)


@pytest.fixture
def exporter():
    return MemoryExporter()


@pytest.fixture
def recording_plugin():
    return RecordingPlugin()


# =============================================================================
# Application Fixtures
# =============================================================================

@pytest.fixture
def test_config():
    return ValoraConfig(
        security=SecurityConfig(api_key=TEST_API_KEY),
        validr=ValidrConfig(enabled=False),
    )


@pytest.fixture
def container(test_config, store, http_session):
    return build_container(test_config, store=store, http_session=http_session)


@pytest.fixture
def api_headers():
    return {"X-API-Key": TEST_API_KEY}


# =============================================================================
# Sample Data
# =============================================================================

@pytest.fixture
def sample_memory():
    return Memory(
        id="9b2f3c1e-6a57-4d0b-8f4e-2d1c0a9e7b61",
        content="Remember to validate the schema before upload",
        source="manual",
        timestamp=datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc),
        tags=["notes"],
    )
