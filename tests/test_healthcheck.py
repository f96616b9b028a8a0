"""Unit tests for docpipe/healthcheck.py -- no real API calls."""

import asyncio
from unittest.mock import AsyncMock

from docpipe.healthcheck import check_endpoint, check_models
from docpipe.providers.base import ProviderError
from tests.conftest import MockProvider


async def test_endpoint_ok():
    assert await check_endpoint(MockProvider(), "gemini-2.5-flash") == (True, "")


async def test_endpoint_failure_message():
    provider = MockProvider()
    provider.generate = AsyncMock(side_effect=ProviderError("gemini", "403 Forbidden"))
    ok, err = await check_endpoint(provider, "gemini-2.5-flash")
    assert ok is False
    assert "403" in err


async def test_check_models_per_model():
    provider = MockProvider()
    results = await check_models(provider, ["gemini-2.5-flash", "gemini-2.5-pro"])
    assert set(results) == {"gemini-2.5-flash", "gemini-2.5-pro"}
    assert all(ok for ok, _ in results.values())
    assert {r.model for r in provider.requests} == {"gemini-2.5-flash", "gemini-2.5-pro"}


async def test_timeout_counts_as_failure():
    """A provider that hangs past the timeout is marked as failed."""
    provider = MockProvider()

    async def hang(*args, **kwargs):
        await asyncio.sleep(9999)

    provider.generate = AsyncMock(side_effect=hang)

    import docpipe.healthcheck as hc
    original = hc._TIMEOUT_SEC
    hc._TIMEOUT_SEC = 0.05
    try:
        ok, err = await check_endpoint(provider, "m")
    finally:
        hc._TIMEOUT_SEC = original

    assert ok is False
    assert err
