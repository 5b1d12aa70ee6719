"""
Shared fixtures for the BizTrack test suite.

Everything runs on the pytest-asyncio loop against the in-memory store
and a scripted identity provider. No network calls.
"""

import pytest

from biztrack.audit import AuditLogger
from biztrack.config import get_settings
from biztrack.data import MutationDispatcher
from biztrack.notifications import Notifier
from biztrack.runtime import EventLoopRunner
from biztrack.services.storage import InMemoryDocumentStore

from tests.helpers import FakeAuthService, signed_in_context


@pytest.fixture(autouse=True)
def settings_env(monkeypatch):
    """Minimal configuration, reloaded for every test."""
    monkeypatch.setenv("FIREBASE_PROJECT_ID", "biztrack-test")
    monkeypatch.setenv("FIREBASE_WEB_API_KEY", "test-api-key")
    monkeypatch.setenv("STORAGE_BACKEND", "memory")
    monkeypatch.setenv("PERSIST_AUDIT_EVENTS", "false")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
async def runner():
    return EventLoopRunner.current()


@pytest.fixture
def store(runner):
    return InMemoryDocumentStore(runner)


@pytest.fixture
def notifier():
    return Notifier()


@pytest.fixture
def audit():
    return AuditLogger()


@pytest.fixture
def dispatcher(store, runner, notifier, audit):
    return MutationDispatcher(store, runner, notifier, audit)


@pytest.fixture
def auth(runner):
    return FakeAuthService(runner)


@pytest.fixture
def context():
    return signed_in_context()
