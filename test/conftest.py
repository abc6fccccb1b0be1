"""
Shared test fixtures for cachelab.

Provides:
- A controllable clock for deterministic cache tests
- A fake HTTP origin for E2E tests
"""

from datetime import datetime, timedelta, timezone

import pytest
from pytest_httpserver import HTTPServer

EPOCH = datetime(2025, 1, 1, tzinfo=timezone.utc)


class FakeClock:
    """Controllable clock; wall time moves with monotonic time."""

    def __init__(self, start: float = 1000.0):
        self.t = start

    def monotonic(self) -> float:
        return self.t

    def now(self) -> datetime:
        return EPOCH + timedelta(seconds=self.t)

    def advance(self, seconds: float) -> None:
        self.t += seconds


@pytest.fixture()
def clock():
    return FakeClock()


# ---------------------------------------------------------------------------
# E2E fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(scope="module")
def fake_origin():
    """
    A real HTTP server that impersonates the data origin.

    Tests configure what the server returns by clearing it and
    registering new handlers.
    """
    server = HTTPServer(host="127.0.0.1")
    server.start()
    yield server
    server.clear()
    if server.is_running():
        server.stop()
