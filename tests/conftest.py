# tests/conftest.py
import json
import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from cloudrecords.api.circuit_breaker import CircuitBreakerManager
from cloudrecords.api.cloudkit_client import CloudKitWebClient
from cloudrecords.config.api import CloudKitAPIConfig
from cloudrecords.core.client import GatedRecordClient
from cloudrecords.core.models import AccountStatus, DatabaseScope, Record, RecordID
from cloudrecords.stores.memory import InMemoryRecordStore


@pytest.fixture(autouse=True)
def quiet_package_logger():
    """Keep setup_logging from attaching console/file handlers during tests.

    setup_logging returns early for a logger that already has handlers; records
    still propagate to the root logger, so caplog keeps working.
    """
    package_logger = logging.getLogger("cloudrecords")
    handler = logging.NullHandler()
    package_logger.addHandler(handler)
    yield
    package_logger.removeHandler(handler)


@pytest.fixture(autouse=True)
def fast_retries(request, monkeypatch):
    """Single attempt, no waiting, unless a test raises MAX_RETRIES itself.

    Tests marked ``default_retry_settings`` see the configured values.
    """
    if request.node.get_closest_marker("default_retry_settings"):
        return
    monkeypatch.setattr(CloudKitAPIConfig, "MAX_RETRIES", 1)
    monkeypatch.setattr(CloudKitAPIConfig, "RETRY_BASE_DELAY", 0)
    monkeypatch.setattr(CloudKitAPIConfig, "RETRY_MAX_DELAY", 0)


@pytest.fixture
def memory_store():
    """A fresh in-memory store with an available account."""
    return InMemoryRecordStore()


@pytest.fixture
def notifier():
    """A notifier that records every event it receives."""
    return MagicMock()


@pytest.fixture
def mock_store():
    """A store whose primitives are all AsyncMocks; the account is available."""
    store = MagicMock()
    store.check_account_availability = AsyncMock(return_value=AccountStatus.AVAILABLE)
    store.query = AsyncMock(return_value=[])
    store.save = AsyncMock()
    store.save_many = AsyncMock()
    store.modify = AsyncMock(return_value=[])
    store.close = AsyncMock()
    return store


@pytest.fixture
def gated_client(mock_store, notifier):
    return GatedRecordClient(mock_store, scope=DatabaseScope.PRIVATE, notifier=notifier)


@pytest.fixture
def make_record():
    """Factory for records with predictable names."""

    def _make(name="note-1", record_type="Note", **fields):
        return Record(record_type, record_id=RecordID(name), fields=fields or {"title": name})

    return _make


class FakeResponse:
    """Minimal stand-in for an aiohttp response used as an async context manager."""

    def __init__(self, status=200, payload=None, text=None):
        self.status = status
        if text is None:
            text = json.dumps(payload) if payload is not None else ""
        self._text = text

    async def text(self):
        return self._text

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    """Replays queued responses (or raises queued exceptions) and records requests."""

    def __init__(self, responses=()):
        self.responses = list(responses)
        self.requests = []
        self.closed = False

    def queue(self, status=200, payload=None, text=None):
        self.responses.append(FakeResponse(status, payload, text))
        return self

    def request(self, method, url, **kwargs):
        self.requests.append({"method": method, "url": url, **kwargs})
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        return response

    async def close(self):
        self.closed = True


@pytest.fixture
def fake_session():
    return FakeSession()


@pytest.fixture
def web_client(fake_session):
    """A CloudKit web client wired to the fake session and a private breaker manager."""
    return CloudKitWebClient(
        "iCloud.com.example.tests",
        environment="development",
        api_token="test-api-token",
        session=fake_session,
        breakers=CircuitBreakerManager(),
        logger_obj=MagicMock(),
    )


@pytest.fixture
def mock_logger():
    """Provide a mock logger with assertion helpers."""
    logger = MagicMock()

    # Track all log calls
    logger._calls = {
        "debug": [],
        "info": [],
        "warning": [],
        "error": [],
        "critical": [],
        "exception": [],
    }

    # Override methods to track calls
    def make_log_method(level):
        def log_method(msg, *args, **kwargs):
            logger._calls[level].append(str(msg))

        return log_method

    for level in logger._calls:
        setattr(logger, level, make_log_method(level))

    # Helper to assert log messages
    def assert_logged(level, substring):
        messages = logger._calls.get(level, [])
        assert any(substring in msg for msg in messages), (
            f"'{substring}' not found in {level} logs: {messages}"
        )

    logger.assert_logged = assert_logged

    return logger
