"""
Shared fixtures: fetch clients over httpx.MockTransport with throttling and
backoff disabled, and a helper to drain adapter streams.
"""

import httpx
import pytest

from core.models import FetchOptions
from core.net import SourceHTTPClient, ThrottleRegistry


@pytest.fixture
def make_client():
    def _make(handler, max_retries=0):
        return SourceHTTPClient(
            user_agent="TestBot/1.0",
            timeout_seconds=5,
            max_retries=max_retries,
            initial_backoff_ms=0,
            throttle=ThrottleRegistry(interval_seconds=0),
            transport=httpx.MockTransport(handler),
        )
    return _make


@pytest.fixture
def collect():
    async def _collect(adapter, max_items=20, max_detail=20, cancel=None):
        options = FetchOptions(max_items_per_run=max_items, max_detail_fetch=max_detail)
        return [posting async for posting in adapter.fetch(options, cancel)]
    return _collect
