"""
Service layer exceptions.

Every error here is transient: callers may retry immediately. While the
circuit breaker is open, retries fail fast with CircuitOpenError instead of
reaching the provider.
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pricing.services.classifier import FailureKind


class ServiceError(Exception):
    """Base exception for service layer errors."""

    def __init__(self, message: str, service_id: str | None = None):
        self.service_id = service_id
        super().__init__(message)


class StoreUnavailableError(ServiceError):
    """Backing key-value store could not be reached."""

    pass


class CacheWaitTimeoutError(ServiceError):
    """Gave up waiting for another caller to recompute a cache entry."""

    def __init__(self, key: str, timeout: float):
        self.key = key
        self.timeout = timeout
        super().__init__(
            f"Timed out after {timeout:.1f}s waiting for '{key}' to be refreshed"
        )


class PricingError(ServiceError):
    """Base class for errors surfaced by fetch_rate."""

    failure_kind: "FailureKind | None" = None

    def __init__(self, message: str, service_id: str | None = "rate_api"):
        super().__init__(message, service_id=service_id)


class CircuitOpenError(PricingError):
    """Circuit breaker is open, request blocked."""

    def __init__(self, reset_after_seconds: float, service_id: str = "rate_api"):
        self.reset_after_seconds = reset_after_seconds
        super().__init__(
            "Rate service is cooling down. "
            f"Please try again in {reset_after_seconds:.0f}s.",
            service_id=service_id,
        )


class RateLimitedError(PricingError):
    """Provider answered 429."""

    def __init__(self, service_id: str = "rate_api"):
        super().__init__(
            "Rate API rate limit exceeded. Scaling back requests.",
            service_id=service_id,
        )


class ProviderOverloadedError(PricingError):
    """Provider answered with a 5xx status."""

    def __init__(self, status_code: int, service_id: str = "rate_api"):
        self.status_code = status_code
        super().__init__(
            "Rate service is currently overloaded. Please try again later.",
            service_id=service_id,
        )


class ProviderError(PricingError):
    """Provider answered with some other non-2xx status."""

    def __init__(self, status_code: int | None, service_id: str = "rate_api"):
        self.status_code = status_code
        super().__init__(
            f"Failed to fetch rate from API: {status_code}", service_id=service_id
        )


class TransportError(PricingError):
    """Provider could not be reached (refused, timed out, socket error)."""

    def __init__(self, detail: str = "", service_id: str = "rate_api"):
        self.detail = detail
        super().__init__(
            "Rate service temporarily unavailable. Please try again shortly.",
            service_id=service_id,
        )


class MalformedResponseError(PricingError):
    """Provider answered 2xx without a usable rate for the query."""

    def __init__(self, detail: str = "", service_id: str = "rate_api"):
        self.detail = detail
        super().__init__(
            "Rate service returned no usable rate for this room.",
            service_id=service_id,
        )
