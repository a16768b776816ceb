"""
Shared fixtures for the pricing tests.
"""

import asyncio
import json
from datetime import timedelta

import pytest
from loguru import logger

from pricing.services.cache import StampedeCache
from pricing.services.circuit_breaker import CircuitBreaker
from pricing.services.client import ProviderResponse
from pricing.services.errors import StoreUnavailableError
from pricing.services.pricing import PricingService
from pricing.services.store import MemoryStore


class FakeClock:
    """Manually advanced wall clock."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class BrokenStore(MemoryStore):
    """Store whose backend is unreachable for every operation."""

    async def get(self, key):
        raise StoreUnavailableError("connection refused")

    async def set_with_ttl(self, key, value, ttl):
        raise StoreUnavailableError("connection refused")

    async def try_claim(self, key, ttl):
        raise StoreUnavailableError("connection refused")

    async def release_claim(self, key, token):
        raise StoreUnavailableError("connection refused")

    async def exists(self, key):
        raise StoreUnavailableError("connection refused")

    async def delete(self, key):
        raise StoreUnavailableError("connection refused")


class StubRedis:
    """Minimal async stand-in for redis.asyncio.Redis."""

    def __init__(self):
        self.data: dict[str, str] = {}
        self.set_calls: list[dict] = []
        self.closed = False

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value, px=None, nx=False):
        self.set_calls.append({"key": key, "value": value, "px": px, "nx": nx})
        if nx and key in self.data:
            return None
        self.data[key] = value
        return True

    async def eval(self, script, numkeys, key, token):
        if self.data.get(key) == token:
            del self.data[key]
            return 1
        return 0

    async def exists(self, key):
        return int(key in self.data)

    async def delete(self, key):
        return int(self.data.pop(key, None) is not None)

    async def aclose(self):
        self.closed = True


class FakeProvider:
    """Stand-in for the pricing provider's fetch function."""

    def __init__(self, response: ProviderResponse | None = None):
        self.response = response or ProviderResponse(status_code=200, body="{}")
        self.error: BaseException | None = None
        self.delay = 0.0
        self.calls: list[tuple[str, str, str]] = []

    async def __call__(self, period: str, hotel: str, room: str) -> ProviderResponse:
        self.calls.append((period, hotel, room))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.response

    def respond(self, status_code: int, body: str = "") -> None:
        self.response = ProviderResponse(status_code=status_code, body=body)

    def respond_rates(self, *rates: dict) -> None:
        self.respond(200, rates_body(*rates))


def rates_body(*rates: dict) -> str:
    return json.dumps({"rates": list(rates)})


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return MemoryStore(clock=clock)


@pytest.fixture
def breaker(store, clock):
    return CircuitBreaker(store, cool_down=timedelta(seconds=30), clock=clock)


@pytest.fixture
def cache(store, clock):
    return StampedeCache(store, clock=clock, wait_timeout=0.5, poll_interval=0.01)


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def service(provider, breaker, cache):
    return PricingService(
        fetch=provider,
        breaker=breaker,
        cache=cache,
        cache_ttl=timedelta(minutes=5),
        race_grace=timedelta(seconds=10),
        breaker_cool_down=timedelta(seconds=30),
        call_timeout=1.0,
    )


@pytest.fixture
def log_records():
    """Capture loguru records emitted during a test."""
    records = []
    handler_id = logger.add(lambda message: records.append(message.record), level="DEBUG")
    yield records
    logger.remove(handler_id)
