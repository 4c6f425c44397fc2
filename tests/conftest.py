"""Pytest configuration and fixtures for visitor poller tests."""

import asyncio
from unittest.mock import MagicMock

import pytest

from visitor_poller.config import PollerSettings, SiteIdentity
from visitor_poller.stats.query import FetchOutcome


class FakeQuery:
    """Stand-in for StatsQuery that returns a scripted snapshot."""

    def __init__(self):
        self.outcome = FetchOutcome()
        self.requests = []
        self.listeners = []
        self.closed = False

    def listen(self, callback):
        self.listeners.append(callback)

    def execute(self, request):
        self.requests.append(request)
        return self.outcome

    def settle(self, outcome):
        """Replace the snapshot and notify listeners, like a finished fetch."""
        self.outcome = outcome
        for callback in list(self.listeners):
            callback()

    async def close(self):
        self.closed = True

    @property
    def last_params(self):
        return self.requests[-1].params


@pytest.fixture
def poller_settings():
    """Provide test poller settings."""
    return PollerSettings(
        log_level="DEBUG",
        refresh_interval=5,
        request_timeout=2,
        metrics_enabled=False,
        health_port=9999,
    )


@pytest.fixture
def site_identity():
    """Provide a sample site identity."""
    return SiteIdentity(
        id="test-site-id",
        endpoint="https://api.test.com",
        token="test-token",
    )


@pytest.fixture
def fake_query():
    """Provide a scripted query."""
    return FakeQuery()


@pytest.fixture
def resolve_endpoint():
    """Provide a mocked endpoint resolver."""
    return MagicMock(side_effect=lambda site, endpoint: f"https://api.example.com/{endpoint}")


@pytest.fixture
def resolve_token():
    """Provide a mocked token resolver."""
    return MagicMock(return_value="mock-token")


@pytest.fixture
def wait_until():
    """Provide a helper that polls a predicate until it holds."""

    async def _wait_until(predicate, timeout=1.0):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not met before timeout")
            await asyncio.sleep(0.005)

    return _wait_until
