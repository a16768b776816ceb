"""
PricingService - resilient rate lookup.

Combines:
- CircuitBreaker to fail fast while the provider is struggling
- StampedeCache so each expired rate is fetched by a single caller
- RateApiClient (or any fetch function with the same signature) for the
  provider call itself
"""

import asyncio
import uuid
from datetime import timedelta
from typing import Any, Awaitable, Callable

import httpx
from loguru import logger
from pydantic import ValidationError

from pricing.models import RateQuery, RateResponse, cache_key
from pricing.services.cache import ComputeOutcome, StampedeCache
from pricing.services.circuit_breaker import CircuitBreaker
from pricing.services.classifier import FailureKind, classify, error_for
from pricing.services.client import ProviderResponse, RateApiClient
from pricing.services.errors import CircuitOpenError, PricingError
from pricing.services.redis_store import RedisStore
from pricing.services.store import KeyValueStore, MemoryStore
from pricing.settings import Settings, global_settings
from pricing.utils import ServiceLogger

# One breaker for the whole provider
BREAKER_KEY = "rate_api"

FetchFunction = Callable[[str, str, str], Awaitable[ProviderResponse]]

TRANSPORT_ERRORS = (httpx.RequestError, OSError, TimeoutError, asyncio.TimeoutError)


class PricingService:
    """
    Public entry point for rate lookups.

    Usage:
        service = create_pricing_service()
        try:
            rate = await service.fetch_rate(
                RateQuery(period="Summer", hotel="H1", room="R1")
            )
        except PricingError as e:
            print(e)  # distinct, human-readable message per failure kind
        finally:
            await service.close()
    """

    def __init__(
        self,
        fetch: FetchFunction,
        breaker: CircuitBreaker,
        cache: StampedeCache,
        service_logger: ServiceLogger | None = None,
        cache_ttl: timedelta = timedelta(minutes=5),
        race_grace: timedelta = timedelta(seconds=10),
        breaker_cool_down: timedelta = timedelta(seconds=30),
        call_timeout: float = 6.0,
        breaker_key: str = BREAKER_KEY,
        client: RateApiClient | None = None,
        store: KeyValueStore | None = None,
    ):
        self._fetch = fetch
        self._breaker = breaker
        self._cache = cache
        self._log = service_logger or ServiceLogger(type(self).__name__)
        self.cache_ttl = cache_ttl
        self.race_grace = race_grace
        self.breaker_cool_down = breaker_cool_down
        self.call_timeout = call_timeout
        self.breaker_key = breaker_key

        # Owned resources, closed by close()
        self._client = client
        self._store = store

    async def fetch_rate(self, query: RateQuery) -> str:
        """
        Look up the rate for a query.

        Returns:
            The rate as a string

        Raises:
            CircuitOpenError: If the provider breaker is open
            RateLimitedError, ProviderOverloadedError, ProviderError,
            TransportError, MalformedResponseError: If this call hit the
                provider and the provider failed
            StoreUnavailableError: If the cache store is unreachable
            CacheWaitTimeoutError: If another caller's refresh took too long
        """
        trace = {
            "trace_id": uuid.uuid4().hex,
            "hotel_id": query.hotel,
            "room_id": query.room,
        }

        if await self._breaker.is_open(self.breaker_key):
            raise await self._circuit_open(trace)

        value = await self._cache.fetch_or_compute(
            cache_key(query),
            self.cache_ttl,
            self.race_grace,
            lambda: self._do_provider_call(query, trace),
        )
        if value is None:
            error = error_for(
                FailureKind.MALFORMED_RESPONSE, detail="matching rate has no value"
            )
            self._log_failure(FailureKind.MALFORMED_RESPONSE, error, trace)
            raise error
        return value

    async def _do_provider_call(
        self, query: RateQuery, trace: dict[str, Any]
    ) -> ComputeOutcome:
        # A caller that waited on another's refresh may get here after a trip
        if await self._breaker.is_open(self.breaker_key):
            return ComputeOutcome.failure(await self._circuit_open(trace))

        self._log.info("rate_cache_miss", {**trace, "period": query.period})

        try:
            response = await asyncio.wait_for(
                self._fetch(query.period, query.hotel, query.room),
                timeout=self.call_timeout,
            )
        except TRANSPORT_ERRORS as e:
            return await self._fail(
                classify(e), trace, detail=f"{type(e).__name__}: {e}"
            )
        except Exception as e:
            # Anything else the fetch function raises still counts as a failed call
            logger.opt(exception=e).warning(
                f"Unexpected error from rate fetch function: {e}"
            )
            return await self._fail(
                classify(e), trace, detail=f"{type(e).__name__}: {e}"
            )

        if not response.is_success:
            return await self._fail(
                classify(response), trace, status_code=response.status_code
            )

        return await self._parse(response, query, trace)

    async def _parse(
        self, response: ProviderResponse, query: RateQuery, trace: dict[str, Any]
    ) -> ComputeOutcome:
        try:
            entry = RateResponse.model_validate_json(response.body).find(query)
        except ValidationError:
            return await self._fail(
                FailureKind.MALFORMED_RESPONSE,
                trace,
                status_code=response.status_code,
                detail="body is not a rate list",
            )

        if entry is None:
            return await self._fail(
                FailureKind.MALFORMED_RESPONSE,
                trace,
                status_code=response.status_code,
                detail="no matching rate entry",
            )
        if not entry.rate:
            return ComputeOutcome.no_data()
        return ComputeOutcome.success(entry.rate)

    async def _fail(
        self,
        kind: FailureKind,
        trace: dict[str, Any],
        status_code: int | None = None,
        detail: str = "",
    ) -> ComputeOutcome:
        error = error_for(kind, status_code=status_code, detail=detail)
        if kind.trips_breaker:
            await self._breaker.trip(self.breaker_key, self.breaker_cool_down)
        self._log_failure(kind, error, trace, status_code=status_code, detail=detail)
        return ComputeOutcome.failure(error)

    async def _circuit_open(self, trace: dict[str, Any]) -> CircuitOpenError:
        remaining = await self._breaker.time_until_reset(self.breaker_key)
        if remaining is None:
            remaining = self.breaker_cool_down.total_seconds()
        error = CircuitOpenError(remaining)
        self._log.error("circuit_open", {**trace, "message": str(error)})
        return error

    def _log_failure(
        self,
        kind: FailureKind,
        error: PricingError,
        trace: dict[str, Any],
        **extra: Any,
    ) -> None:
        self._log.error(kind.value, {**trace, **extra, "message": str(error)})

    async def get_health_status(self) -> dict[str, Any]:
        """Get cache statistics and breaker status."""
        return {
            "cache": self._cache.get_stats().to_dict(),
            "circuit_breaker": await self._breaker.get_status(self.breaker_key),
        }

    async def close(self) -> None:
        """Close owned client and store."""
        if self._client is not None:
            await self._client.close()
        if isinstance(self._store, RedisStore):
            await self._store.close()


def create_pricing_service(
    settings: Settings | None = None,
    store: KeyValueStore | None = None,
    fetch: FetchFunction | None = None,
) -> PricingService:
    """
    Wire a PricingService from settings.

    Uses Redis when REDIS_URL is set, otherwise an in-process MemoryStore.
    The breaker and cache share the store under disjoint key namespaces.
    """
    settings = settings or global_settings

    owned_store = None
    if store is None:
        if settings.redis_url:
            store = owned_store = RedisStore.from_url(settings.redis_url)
        else:
            store = MemoryStore()

    client = None
    if fetch is None:
        client = RateApiClient(
            settings.rate_api_url,
            token=settings.rate_api_token,
            timeout=settings.rate_api_timeout,
        )
        fetch = client.get_rate

    return PricingService(
        fetch=fetch,
        breaker=CircuitBreaker(store, cool_down=settings.breaker_cool_down),
        cache=StampedeCache(
            store,
            wait_timeout=settings.cache_wait_timeout,
            poll_interval=settings.cache_poll_interval,
        ),
        cache_ttl=settings.cache_ttl,
        race_grace=settings.race_grace,
        breaker_cool_down=settings.breaker_cool_down,
        # Outer bound in case the fetch function ignores its own timeout
        call_timeout=settings.rate_api_timeout + 1.0,
        client=client,
        store=owned_store,
    )
