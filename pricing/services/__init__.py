"""
Service layer infrastructure - resilience patterns for the pricing provider.

Provides:
- KeyValueStore: Shared store contract (MemoryStore, RedisStore)
- CircuitBreaker: Store-backed breaker with a fixed cool-down
- StampedeCache: Cache-aside with a single recomputing caller per key
- RateApiClient: HTTP client for the pricing provider
- PricingService: fetch_rate combining all of the above
"""

from pricing.services.errors import (
    ServiceError,
    PricingError,
    CircuitOpenError,
    RateLimitedError,
    ProviderOverloadedError,
    ProviderError,
    TransportError,
    MalformedResponseError,
    StoreUnavailableError,
    CacheWaitTimeoutError,
)
from pricing.services.classifier import FailureKind, classify, error_for
from pricing.services.store import KeyValueStore, MemoryStore
from pricing.services.redis_store import RedisStore
from pricing.services.circuit_breaker import CircuitBreaker, CircuitState, CircuitTrip
from pricing.services.cache import CacheEntry, CacheStats, ComputeOutcome, StampedeCache
from pricing.services.client import ProviderResponse, RateApiClient
from pricing.services.pricing import BREAKER_KEY, PricingService, create_pricing_service

__all__ = [
    # Errors
    "ServiceError",
    "PricingError",
    "CircuitOpenError",
    "RateLimitedError",
    "ProviderOverloadedError",
    "ProviderError",
    "TransportError",
    "MalformedResponseError",
    "StoreUnavailableError",
    "CacheWaitTimeoutError",
    # Classifier
    "FailureKind",
    "classify",
    "error_for",
    # Store
    "KeyValueStore",
    "MemoryStore",
    "RedisStore",
    # Circuit Breaker
    "CircuitBreaker",
    "CircuitState",
    "CircuitTrip",
    # Cache
    "CacheEntry",
    "CacheStats",
    "ComputeOutcome",
    "StampedeCache",
    # Client
    "ProviderResponse",
    "RateApiClient",
    # Orchestrator
    "BREAKER_KEY",
    "PricingService",
    "create_pricing_service",
]
