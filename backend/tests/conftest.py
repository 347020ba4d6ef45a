"""Shared test fixtures and configuration for backend tests."""
import pytest
from fastapi.testclient import TestClient

from roomchat.chat.coordinator import SessionCoordinator
from roomchat.chat.message_log import MessageLog
from roomchat.chat.rate_limiter import SlidingWindowRateLimiter
from roomchat.chat.registry import ParticipantRegistry
from roomchat.config import AppSettings
from roomchat.main import create_app


class FakeClock:
    """Manually advanced clock, usable as both wall and monotonic time."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingTransport:
    """Transport that records every delivery instead of sending it."""

    def __init__(self):
        self.sent = []

    def deliver(self, connection_id, event):
        self.sent.append((connection_id, event))

    def events_for(self, connection_id):
        return [event for cid, event in self.sent if cid == connection_id]

    def types_for(self, connection_id):
        return [event.type for event in self.events_for(connection_id)]

    def reset(self):
        self.sent.clear()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def coordinator(clock, transport):
    """A coordinator with default limits, a fake clock and a recording transport."""
    return SessionCoordinator(
        registry=ParticipantRegistry(clock=clock),
        message_log=MessageLog(clock=clock),
        rate_limiter=SlidingWindowRateLimiter(),
        transport=transport,
        clock=clock,
        monotonic=clock,
    )


@pytest.fixture
def settings():
    """Default settings; tests override fields before the client starts."""
    return AppSettings()


@pytest.fixture
def client(settings):
    """Provide a TestClient with the lifespan (coordinator, hub) running."""
    with TestClient(create_app(settings)) as test_client:
        yield test_client
