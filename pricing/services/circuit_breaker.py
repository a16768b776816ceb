"""
CircuitBreaker - Stops requests to a failing provider for a fixed cool-down.

State lives in the shared KeyValueStore, so every process sharing the store
sees the same breaker:
- CLOSED: no state stored for the key, requests pass through
- OPEN: state stored with TTL = cool-down, requests are blocked

Transitions:
- CLOSED → OPEN: on a single breaker-worthy failure (trip)
- OPEN → CLOSED: passively, when the stored state expires

There is no HALF_OPEN state: the first call after the cool-down is a normal
attempt. The provider fails in prolonged outages rather than short blips, so
one failure is enough to trip.
"""

import time
from datetime import timedelta
from enum import Enum
from typing import Any, Callable

from loguru import logger
from pydantic import BaseModel, ValidationError

from pricing.services.errors import StoreUnavailableError
from pricing.services.store import KeyValueStore

BREAKER_NAMESPACE = "circuit_breaker"


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "CLOSED"  # Normal operation
    OPEN = "OPEN"  # Blocking requests


class CircuitTrip(BaseModel):
    """Persisted record of a trip. Its presence in the store means OPEN."""

    key: str
    tripped_at: float
    cool_down: float

    def remaining(self, now: float) -> float:
        return max(0.0, self.tripped_at + self.cool_down - now)


class CircuitBreaker:
    """
    Store-backed circuit breaker.

    Usage:
        breaker = CircuitBreaker(store)

        if await breaker.is_open("rate_api"):
            raise CircuitOpenError(...)

        try:
            result = await make_request()
        except ProviderDown:
            await breaker.trip("rate_api")
            raise
    """

    def __init__(
        self,
        store: KeyValueStore,
        cool_down: timedelta = timedelta(seconds=30),
        clock: Callable[[], float] = time.time,
    ):
        self._store = store
        self.cool_down = cool_down
        self._clock = clock

    @staticmethod
    def storage_key(key: str) -> str:
        return f"{BREAKER_NAMESPACE}/{key}"

    async def is_open(self, key: str) -> bool:
        """Check whether the breaker is tripped. Fails open if the store is down."""
        try:
            return await self._store.exists(self.storage_key(key))
        except StoreUnavailableError as e:
            logger.warning(
                f"Store unreachable checking circuit '{key}': {e}. Failing open."
            )
            return False

    async def state(self, key: str) -> CircuitState:
        return CircuitState.OPEN if await self.is_open(key) else CircuitState.CLOSED

    async def trip(self, key: str, cool_down: timedelta | None = None) -> None:
        """Open the breaker. Re-tripping an open breaker restarts the cool-down."""
        cool_down = cool_down or self.cool_down
        record = CircuitTrip(
            key=key,
            tripped_at=self._clock(),
            cool_down=cool_down.total_seconds(),
        )
        try:
            await self._store.set_with_ttl(
                self.storage_key(key), record.model_dump_json(), cool_down
            )
        except StoreUnavailableError as e:
            logger.error(f"Store unreachable tripping circuit '{key}': {e}")
            return
        logger.warning(
            f"Circuit breaker '{key}' OPENED for {cool_down.total_seconds():.0f}s"
        )

    async def get_trip(self, key: str) -> CircuitTrip | None:
        """Load the live trip record, or None when closed or unreadable."""
        try:
            raw = await self._store.get(self.storage_key(key))
        except StoreUnavailableError as e:
            logger.warning(f"Store unreachable reading circuit '{key}': {e}")
            return None
        if raw is None:
            return None
        try:
            return CircuitTrip.model_validate_json(raw)
        except ValidationError:
            logger.warning(f"Unreadable trip record for circuit '{key}'")
            return None

    async def time_until_reset(self, key: str) -> float | None:
        """Seconds until the breaker closes, or None when closed."""
        trip = await self.get_trip(key)
        if trip is None:
            return None
        return trip.remaining(self._clock())

    async def reset(self, key: str) -> None:
        """Manually close the breaker."""
        await self._store.delete(self.storage_key(key))
        logger.info(f"Circuit breaker '{key}' manually reset")

    async def get_status(self, key: str) -> dict[str, Any]:
        """Get current status as dictionary."""
        trip = await self.get_trip(key)
        return {
            "key": key,
            "state": (CircuitState.OPEN if trip else CircuitState.CLOSED).value,
            "tripped_at": trip.tripped_at if trip else None,
            "time_until_reset": trip.remaining(self._clock()) if trip else None,
        }
