"""Shared fixtures: settings, a controllable clock, a store and a dispatcher with fake tools."""

import pytest

from concierge.api.tools import ToolDispatcher
from concierge.config import Settings
from concierge.safety import SafetyGate, SessionStore

from helpers import FakeClock, RecordingHandler

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        ANTHROPIC_API_KEY="test-key",
        GOOGLE_CLIENT_ID="client-id",
        GOOGLE_CLIENT_SECRET="client-secret",
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return SessionStore(capacity=10, clock=clock)


@pytest.fixture
def gate(store):
    return SafetyGate(store, window_seconds=30.0)


@pytest.fixture
def handlers():
    """Fake handlers for the calendar tools used in loop tests."""
    return {
        "list_events": RecordingHandler({"success": True, "events": [{"id": "evt-1", "summary": "Standup"}]}),
        "delete_event": RecordingHandler({"success": True}),
        "create_event": RecordingHandler({"success": True, "event": {"id": "evt-2"}}),
        "send_email": RecordingHandler(error=RuntimeError("smtp down")),
    }


@pytest.fixture
def dispatcher(store, gate, handlers):
    d = ToolDispatcher(store, gate)
    for name, handler in handlers.items():
        d.register(name, handler)
    return d
