"""
Shared pytest fixtures for all tests.
"""

from collections.abc import AsyncIterator
from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio

from services.fundraising_service.handler import RequestHandler
from services.fundraising_service.server import FundraisingServer
from shared.concurrency.registry import ClientRegistry
from shared.config import Settings
from shared.events.store import FundraisingEventStore

# Whole milliseconds, so datetimes survive the wire unchanged
START = datetime(2030, 1, 15, 12, 0, 0, tzinfo=UTC)


class ManualClock:
    """Wall clock that only moves when told to."""

    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class ManualMonotonic:
    """Monotonic seconds counter that only moves when told to."""

    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def monotonic() -> ManualMonotonic:
    return ManualMonotonic()


@pytest.fixture
def store(clock: ManualClock) -> FundraisingEventStore:
    return FundraisingEventStore(clock=clock)


@pytest.fixture
def handler(store: FundraisingEventStore) -> RequestHandler:
    return RequestHandler(store)


@pytest.fixture
def registry(monotonic: ManualMonotonic) -> ClientRegistry:
    return ClientRegistry(timeout_seconds=30.0, clock=monotonic)


def make_settings(transport: str) -> Settings:
    return Settings(
        transport=transport,
        server_host="127.0.0.1",
        server_port=0,
        client_timeout_seconds=30.0,
    )


@pytest_asyncio.fixture
async def tcp_server() -> AsyncIterator[FundraisingServer]:
    """TCP server on an ephemeral port with a real clock."""
    server = FundraisingServer(make_settings("tcp"))
    async with server:
        yield server


@pytest_asyncio.fixture
async def udp_server(registry: ClientRegistry) -> AsyncIterator[FundraisingServer]:
    """UDP server on an ephemeral port; the client registry uses a manual clock."""
    server = FundraisingServer(make_settings("udp"), registry=registry)
    async with server:
        yield server
