"""
Shared fixtures for the fetch session tests.
"""
import queue

import pytest

from fetch_backend.commands import Ack, BackendCommands
from fetch_backend.events import EventSource
from fetch_backend.models import Provider
from fetch_app.fetch.services import FetchService
from fetch_app.fetch_config import ConfigurationBuilder, PersistedConfigStore
from fetch_app.session import SessionState


class FakeClock:
    """Manually advanced replacement for time.time."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.current = start

    def __call__(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


class FakeCommands(BackendCommands):
    """Records commands; raises the configured error instead when one is set."""

    def __init__(self):
        self.started = []
        self.cancel_calls = 0
        self.start_error = None
        self.cancel_error = None

    def start_fetch(self, options):
        self.started.append(options)
        if self.start_error is not None:
            raise self.start_error
        return Ack(message="started")

    def cancel_fetch(self):
        self.cancel_calls += 1
        if self.cancel_error is not None:
            raise self.cancel_error
        return Ack(message="cancelling")


class QueueEventSource(EventSource):
    """Progress topic fed by the test. ``end()`` finishes the subscription."""

    def __init__(self):
        self._queue = queue.Queue()

    def push(self, event) -> None:
        self._queue.put(event)

    def end(self) -> None:
        self._queue.put(None)

    def subscribe(self):
        while True:
            item = self._queue.get()
            if item is None:
                return
            yield item

    def close(self) -> None:
        self._queue.put(None)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def state(clock):
    return SessionState(clock=clock)


@pytest.fixture
def commands():
    return FakeCommands()


@pytest.fixture
def event_source():
    return QueueEventSource()


@pytest.fixture
def credentials():
    """Providers that have an API key configured; tests add or remove entries."""
    return {Provider.GLM}


@pytest.fixture
def store(tmp_path):
    return PersistedConfigStore(tmp_path / "fetch_settings.json")


@pytest.fixture
def builder(store, credentials):
    return ConfigurationBuilder(store, has_credential=lambda provider: provider in credentials)


@pytest.fixture
def service(state, commands, builder):
    return FetchService(state, commands, builder)
