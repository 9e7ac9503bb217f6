"""Shared test fixtures.

Provides:
- FakeTokenManager: in-memory stand-in for the vendor OAuth managers
- Zoho and Graph clients wired to fake tokens with a single attempt
- A fixed UTC clock for token expiry tests
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from src.syncbridge.services.graph import GraphCalendarClient
from src.syncbridge.services.zoho import ZohoCRMClient


class FakeTokenManager:
    """Hands out a fixed token and records how it was used."""

    def __init__(self, token: str = "test-token", error: Exception | None = None) -> None:
        self.token = token
        self.error = error
        self.calls = 0
        self.invalidated = 0
        self._has_token = False

    @property
    def has_token(self) -> bool:
        return self._has_token

    async def get_access_token(self, force_refresh: bool = False) -> str:
        self.calls += 1
        if self.error is not None:
            raise self.error
        self._has_token = True
        return self.token

    def invalidate(self) -> None:
        self.invalidated += 1
        self._has_token = False


class MutableClock:
    """Clock whose current time can be moved forward by tests."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def fake_tokens():
    return FakeTokenManager()


@pytest.fixture
def clock():
    return MutableClock(datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def zoho_client(fake_tokens):
    """ZohoCRMClient that fails on the first vendor error."""
    return ZohoCRMClient(fake_tokens, "https://zoho.test", retry_attempts=1)


@pytest.fixture
def graph_client(fake_tokens):
    """GraphCalendarClient that fails on the first vendor error."""
    return GraphCalendarClient(fake_tokens, "https://graph.test/v1.0", retry_attempts=1)
