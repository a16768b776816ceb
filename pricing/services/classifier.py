"""
Error classifier - maps a raw provider outcome to a failure kind.
"""

from enum import Enum

from pricing.services.errors import (
    MalformedResponseError,
    PricingError,
    ProviderError,
    ProviderOverloadedError,
    RateLimitedError,
    TransportError,
)


class FailureKind(str, Enum):
    """Closed set of provider failure kinds."""

    RATE_LIMITED = "rate_limited"
    PROVIDER_OVERLOADED = "provider_overloaded"
    PROVIDER_ERROR = "provider_error"
    TRANSPORT_FAILURE = "transport_failure"
    MALFORMED_RESPONSE = "malformed_response"

    @property
    def trips_breaker(self) -> bool:
        """Whether this kind signals the whole provider is struggling."""
        return self in _BREAKER_WORTHY


_BREAKER_WORTHY = frozenset(
    {
        FailureKind.RATE_LIMITED,
        FailureKind.PROVIDER_OVERLOADED,
        FailureKind.TRANSPORT_FAILURE,
    }
)


def classify_status(status_code: int) -> FailureKind:
    """Classify an HTTP status the caller could not use."""
    if status_code == 429:
        return FailureKind.RATE_LIMITED
    if 500 <= status_code <= 599:
        return FailureKind.PROVIDER_OVERLOADED
    if 200 <= status_code <= 299:
        # A 2xx only reaches classification when its body was unusable
        return FailureKind.MALFORMED_RESPONSE
    return FailureKind.PROVIDER_ERROR


def classify(outcome: object) -> FailureKind:
    """
    Classify a failed fetch outcome. Never raises.

    Args:
        outcome: The exception raised by the fetch function, or the response
            it returned (anything with a ``status_code`` attribute).
    """
    if isinstance(outcome, BaseException):
        return FailureKind.TRANSPORT_FAILURE

    status_code = getattr(outcome, "status_code", None)
    if isinstance(status_code, int):
        return classify_status(status_code)

    return FailureKind.MALFORMED_RESPONSE


def error_for(
    kind: FailureKind,
    status_code: int | None = None,
    detail: str = "",
) -> PricingError:
    """Build the public exception for a failure kind."""
    if kind is FailureKind.RATE_LIMITED:
        error: PricingError = RateLimitedError()
    elif kind is FailureKind.PROVIDER_OVERLOADED:
        error = ProviderOverloadedError(status_code or 500)
    elif kind is FailureKind.TRANSPORT_FAILURE:
        error = TransportError(detail)
    elif kind is FailureKind.MALFORMED_RESPONSE:
        error = MalformedResponseError(detail)
    else:
        error = ProviderError(status_code)
    error.failure_kind = kind
    return error
