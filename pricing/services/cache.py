"""
StampedeCache - Cache-aside with stampede protection over a shared KeyValueStore.

Features:
- TTL freshness for cache entries
- Stale grace window: a just-expired value is still served while one caller
  refreshes it
- Single recomputing caller per key, enforced by an atomic claim in the store
- No negative caching: failures and "no data" results are never stored
- Bounded waiting for callers that have nothing to serve
"""

import asyncio
import time
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Any, Awaitable, Callable

from loguru import logger
from pydantic import BaseModel, ValidationError

from pricing.services.errors import CacheWaitTimeoutError, StoreUnavailableError
from pricing.services.store import KeyValueStore

CLAIM_NAMESPACE = "lock"


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    NO_DATA = "no_data"
    FAILURE = "failure"


@dataclass(frozen=True)
class ComputeOutcome:
    """Result of a recompute. Only SUCCESS is ever written to the cache."""

    kind: OutcomeKind
    value: str | None = None
    error: Exception | None = None

    @classmethod
    def success(cls, value: str) -> "ComputeOutcome":
        return cls(OutcomeKind.SUCCESS, value=value)

    @classmethod
    def no_data(cls) -> "ComputeOutcome":
        return cls(OutcomeKind.NO_DATA)

    @classmethod
    def failure(cls, error: Exception) -> "ComputeOutcome":
        return cls(OutcomeKind.FAILURE, error=error)

    @property
    def is_success(self) -> bool:
        return self.kind is OutcomeKind.SUCCESS


Compute = Callable[[], Awaitable[ComputeOutcome]]


class CacheEntry(BaseModel):
    """A cached value with the metadata needed to judge its freshness."""

    value: str
    stored_at: float
    ttl: float

    def is_fresh(self, now: float) -> bool:
        return now - self.stored_at <= self.ttl

    def is_within_grace(self, now: float, stale_grace: float) -> bool:
        return now - self.stored_at <= self.ttl + stale_grace


@dataclass
class CacheStats:
    """Cache statistics."""

    hits: int = 0
    stale_hits: int = 0
    misses: int = 0
    recomputes: int = 0
    waits: int = 0
    wait_timeouts: int = 0

    @property
    def hit_rate(self) -> float:
        """Calculate cache hit rate."""
        total = self.hits + self.stale_hits + self.misses
        if total == 0:
            return 0.0
        return (self.hits + self.stale_hits) / total

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "hits": self.hits,
            "stale_hits": self.stale_hits,
            "misses": self.misses,
            "recomputes": self.recomputes,
            "waits": self.waits,
            "wait_timeouts": self.wait_timeouts,
            "hit_rate": f"{self.hit_rate:.2%}",
        }


class StampedeCache:
    """
    Cache-aside orchestration with a single recomputing caller per key.

    Usage:
        cache = StampedeCache(store)

        async def compute() -> ComputeOutcome:
            ...
            return ComputeOutcome.success("200")

        value = await cache.fetch_or_compute(
            "pricing/v1/H1/R1/Summer",
            ttl=timedelta(minutes=5),
            stale_grace=timedelta(seconds=10),
            compute=compute,
        )
    """

    def __init__(
        self,
        store: KeyValueStore,
        clock: Callable[[], float] = time.time,
        wait_timeout: float = 6.0,
        poll_interval: float = 0.05,
        claim_ttl: timedelta | None = None,
        debug: bool = False,
    ):
        self._store = store
        self._clock = clock
        self._wait_timeout = wait_timeout
        self._poll_interval = poll_interval
        self._claim_ttl = claim_ttl
        self._debug = debug
        self._stats = CacheStats()
        # Recomputes outlive a cancelled caller; keep references until done
        self._recomputing: set[asyncio.Task[ComputeOutcome]] = set()

    @staticmethod
    def claim_key(key: str) -> str:
        return f"{CLAIM_NAMESPACE}/{key}"

    async def fetch_or_compute(
        self,
        key: str,
        ttl: timedelta,
        stale_grace: timedelta,
        compute: Compute,
    ) -> str | None:
        """
        Return the cached value for key, recomputing it at most once at a time.

        Args:
            key: Cache key
            ttl: Freshness window for a newly computed value
            stale_grace: How long an expired value may still be served while
                another caller refreshes it; also the default claim TTL
            compute: Coroutine function producing a ComputeOutcome

        Returns:
            The fresh or stale value, or None when compute reported no data

        Raises:
            The error carried by a FAILURE outcome (to the computing caller only)
            StoreUnavailableError: If the store cannot be read or claimed
            CacheWaitTimeoutError: If nothing could be served in time

        A failed recompute is not shared: its error goes to the computing caller
        only, the claim is released, and each caller still waiting makes its
        own attempt in turn (one at a time). When the failure trips the
        provider breaker, compute is expected to check the breaker and fail
        fast, so those attempts never reach the provider. A benign failure
        (e.g. a 404) therefore costs one sequential provider call per waiting
        caller.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._wait_timeout
        waiting = False

        while True:
            entry = await self._read(key, stale_grace)
            if entry is not None and entry.is_fresh(self._clock()):
                self._stats.hits += 1
                self._log(f"HIT: {key}")
                return entry.value

            token = await self._store.try_claim(
                self.claim_key(key), self._claim_ttl or stale_grace
            )
            if token is not None:
                self._stats.misses += 1
                self._log(f"MISS: {key} (recomputing)")
                outcome = await self._recompute_detached(
                    key, token, ttl, stale_grace, compute
                )
                if outcome.kind is OutcomeKind.FAILURE:
                    raise outcome.error
                return outcome.value

            if entry is not None:
                self._stats.stale_hits += 1
                self._log(f"STALE HIT: {key}")
                return entry.value

            if not waiting:
                waiting = True
                self._stats.waits += 1
                self._log(f"WAIT: {key} is being recomputed elsewhere")

            if loop.time() >= deadline:
                self._stats.wait_timeouts += 1
                logger.warning(f"Gave up waiting for recompute of '{key}'")
                raise CacheWaitTimeoutError(key, self._wait_timeout)

            await asyncio.sleep(self._poll_interval)

    async def _recompute_detached(
        self,
        key: str,
        token: str,
        ttl: timedelta,
        stale_grace: timedelta,
        compute: Compute,
    ) -> ComputeOutcome:
        task = asyncio.create_task(
            self._recompute(key, token, ttl, stale_grace, compute)
        )
        self._recomputing.add(task)
        task.add_done_callback(self._forget)
        return await asyncio.shield(task)

    def _forget(self, task: asyncio.Task[ComputeOutcome]) -> None:
        self._recomputing.discard(task)
        if not task.cancelled() and task.exception() is not None:
            self._log(f"Recompute raised: {task.exception()!r}")

    async def _recompute(
        self,
        key: str,
        token: str,
        ttl: timedelta,
        stale_grace: timedelta,
        compute: Compute,
    ) -> ComputeOutcome:
        try:
            # Another caller may have refreshed the key between our read and claim
            entry = await self._read(key, stale_grace)
            if entry is not None and entry.is_fresh(self._clock()):
                return ComputeOutcome.success(entry.value)

            self._stats.recomputes += 1
            outcome = await compute()
            if outcome.is_success:
                await self._write(key, outcome.value, ttl, stale_grace)
            else:
                self._log(f"NOT STORED: {key} ({outcome.kind.value})")
            return outcome
        finally:
            await self._release(key, token)

    async def _read(self, key: str, stale_grace: timedelta) -> CacheEntry | None:
        raw = await self._store.get(key)
        if raw is None:
            return None
        try:
            entry = CacheEntry.model_validate_json(raw)
        except ValidationError:
            logger.warning(f"Discarding unreadable cache entry '{key}'")
            return None
        if not entry.is_within_grace(self._clock(), stale_grace.total_seconds()):
            return None
        return entry

    async def _write(
        self, key: str, value: str, ttl: timedelta, stale_grace: timedelta
    ) -> None:
        entry = CacheEntry(value=value, stored_at=self._clock(), ttl=ttl.total_seconds())
        try:
            await self._store.set_with_ttl(key, entry.model_dump_json(), ttl + stale_grace)
            self._log(f"SET: {key} (TTL: {ttl.total_seconds()}s)")
        except StoreUnavailableError as e:
            logger.error(f"Could not store fresh value for '{key}': {e}")

    async def _release(self, key: str, token: str) -> None:
        try:
            await self._store.release_claim(self.claim_key(key), token)
        except StoreUnavailableError as e:
            logger.warning(f"Could not release claim for '{key}', it will expire: {e}")

    def get_stats(self) -> CacheStats:
        """Get cache statistics."""
        return self._stats

    def _log(self, message: str) -> None:
        """Log debug message if debug mode is enabled."""
        if self._debug:
            logger.debug(f"[StampedeCache] {message}")
