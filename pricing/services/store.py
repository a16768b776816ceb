"""
KeyValueStore - Shared async key-value backend for cache entries and breaker state.

The cache and the circuit breaker never hold state of their own; both talk to
a store through this contract so the same physical backend can serve several
processes. Implementations must:
- Treat expired keys as absent
- Make try_claim atomic (conditional insert) and return a per-claim token
- Only release a claim while it still holds the presented token
- Raise StoreUnavailableError when the backend cannot be reached
"""

import asyncio
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable

from loguru import logger


class KeyValueStore(ABC):
    """Abstract async key-value store with TTLs and atomic claims."""

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Return the live value for key, or None if absent/expired."""
        ...

    @abstractmethod
    async def set_with_ttl(self, key: str, value: str, ttl: timedelta) -> None:
        """Store value under key, expiring after ttl."""
        ...

    @abstractmethod
    async def try_claim(self, key: str, ttl: timedelta) -> str | None:
        """Atomically set key only if absent. Returns a claim token when this caller won."""
        ...

    @abstractmethod
    async def release_claim(self, key: str, token: str) -> None:
        """Release a claim won with try_claim, unless it has since changed hands."""
        ...

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Check whether key holds a live value."""
        ...

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove key. True if something was removed."""
        ...


@dataclass
class _StoredValue:
    value: str
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class MemoryStore(KeyValueStore):
    """
    In-process store backed by a dict.

    Expiry is passive: keys are dropped when read after their deadline.
    A custom clock can be injected for deterministic expiry in tests.

    Usage:
        store = MemoryStore()
        token = await store.try_claim("lock/key", timedelta(seconds=10))
        if token:
            ...
            await store.release_claim("lock/key", token)
    """

    def __init__(self, clock: Callable[[], float] = time.time, debug: bool = False):
        self._data: dict[str, _StoredValue] = {}
        self._clock = clock
        self._debug = debug
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> str | None:
        async with self._lock:
            stored = self._live(key)
            return stored.value if stored else None

    async def set_with_ttl(self, key: str, value: str, ttl: timedelta) -> None:
        async with self._lock:
            self._data[key] = _StoredValue(
                value=value,
                expires_at=self._clock() + ttl.total_seconds(),
            )
            self._log(f"SET: {key} (TTL: {ttl.total_seconds()}s)")

    async def try_claim(self, key: str, ttl: timedelta) -> str | None:
        async with self._lock:
            if self._live(key) is not None:
                self._log(f"CLAIM BUSY: {key}")
                return None
            token = uuid.uuid4().hex
            self._data[key] = _StoredValue(
                value=token,
                expires_at=self._clock() + ttl.total_seconds(),
            )
            self._log(f"CLAIM: {key}")
            return token

    async def release_claim(self, key: str, token: str) -> None:
        async with self._lock:
            stored = self._live(key)
            if stored is None or stored.value != token:
                self._log(f"RELEASE SKIPPED: {key} no longer ours")
                return
            del self._data[key]
            self._log(f"RELEASE: {key}")

    async def exists(self, key: str) -> bool:
        async with self._lock:
            return self._live(key) is not None

    async def delete(self, key: str) -> bool:
        async with self._lock:
            return self._data.pop(key, None) is not None

    async def clear(self) -> None:
        """Drop every key."""
        async with self._lock:
            self._data.clear()

    def _live(self, key: str) -> _StoredValue | None:
        stored = self._data.get(key)
        if stored is None:
            return None
        if stored.is_expired(self._clock()):
            del self._data[key]
            self._log(f"EXPIRED: {key}")
            return None
        return stored

    def _log(self, message: str) -> None:
        """Log debug message if debug mode is enabled."""
        if self._debug:
            logger.debug(f"[MemoryStore] {message}")
