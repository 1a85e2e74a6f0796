"""Pytest bootstrap configuration.

Shared fakes: a manual clock for the polling scheduler and an httpx
client factory backed by `httpx.MockTransport`.
"""
import asyncio
import os

import httpx
import pytest

# Plain renderer keeps captured logs readable
os.environ.setdefault("DEBUG", "false")


class FakeClock:
    """Time only moves when the scheduler sleeps."""

    def __init__(self) -> None:
        self.current = 0.0
        self.sleeps: list[float] = []

    def now(self) -> float:
        return self.current

    async def sleep(self, delay: float) -> None:
        self.sleeps.append(delay)
        self.current += delay
        await asyncio.sleep(0)


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def mock_http():
    """Build an AsyncClient whose requests are answered by `handler`."""
    def _build(handler) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return _build
