"""
Tests for the async retry decorator.

asyncio.sleep is patched out so backoff delays are recorded, not waited on.
"""

import asyncio

import pytest

from machinebio.core import retry as retry_module
from machinebio.core.retry import NonRetryableError, RetryableError, async_retry


@pytest.fixture
def sleeps(monkeypatch):
    recorded = []

    async def fake_sleep(delay):
        recorded.append(delay)

    monkeypatch.setattr(retry_module.asyncio, "sleep", fake_sleep)
    return recorded


@pytest.mark.asyncio
async def test_success_on_first_attempt(sleeps):
    calls = []

    @async_retry(max_attempts=3)
    async def fetch():
        calls.append(1)
        return "ok"

    assert await fetch() == "ok"
    assert len(calls) == 1
    assert sleeps == []


@pytest.mark.asyncio
async def test_retryable_error_then_success(sleeps):
    calls = []

    @async_retry(max_attempts=3, base_delay=0.5)
    async def fetch():
        calls.append(1)
        if len(calls) < 3:
            raise RetryableError("upstream 503")
        return "ok"

    assert await fetch() == "ok"
    assert len(calls) == 3
    assert sleeps == [0.5, 1.0]


@pytest.mark.asyncio
async def test_gives_up_after_max_attempts(sleeps):
    calls = []

    @async_retry(max_attempts=3, base_delay=1.0)
    async def fetch():
        calls.append(1)
        raise RetryableError("still down")

    with pytest.raises(RetryableError):
        await fetch()

    assert len(calls) == 3
    assert len(sleeps) == 2


@pytest.mark.asyncio
async def test_delay_is_capped(sleeps):
    @async_retry(max_attempts=5, base_delay=1.0, max_delay=3.0)
    async def fetch():
        raise RetryableError("down")

    with pytest.raises(RetryableError):
        await fetch()

    assert sleeps == [1.0, 2.0, 3.0, 3.0]


@pytest.mark.asyncio
async def test_timeout_is_retried(sleeps):
    calls = []

    @async_retry(max_attempts=2)
    async def fetch():
        calls.append(1)
        if len(calls) == 1:
            raise asyncio.TimeoutError()
        return "ok"

    assert await fetch() == "ok"
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_non_retryable_error_is_raised_immediately(sleeps):
    calls = []

    @async_retry(max_attempts=3)
    async def fetch():
        calls.append(1)
        raise NonRetryableError("404")

    with pytest.raises(NonRetryableError):
        await fetch()

    assert len(calls) == 1
    assert sleeps == []


@pytest.mark.asyncio
async def test_unexpected_errors_propagate(sleeps):
    calls = []

    @async_retry(max_attempts=3)
    async def fetch():
        calls.append(1)
        raise KeyError("Results")

    with pytest.raises(KeyError):
        await fetch()

    assert len(calls) == 1
