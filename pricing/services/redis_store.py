"""
RedisStore - KeyValueStore backed by Redis.

Claims use SET NX PX with a per-claim token; release only deletes the key
while it still holds our token, so a claim that expired and was re-won by
another process is never released by the old owner.
"""

import uuid
from datetime import timedelta
from typing import Any

from loguru import logger
from redis import asyncio as aioredis
from redis.exceptions import RedisError

from pricing.services.errors import StoreUnavailableError
from pricing.services.store import KeyValueStore

# Delete key only if it still holds the caller's token
RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


def _millis(ttl: timedelta) -> int:
    return max(1, int(ttl.total_seconds() * 1000))


class RedisStore(KeyValueStore):
    """
    Redis implementation of the KeyValueStore contract.

    Usage:
        store = RedisStore.from_url("redis://localhost:6379/0")
        value = await store.get("pricing/v1/H1/R1/Summer")
        await store.close()
    """

    def __init__(self, client: Any, prefix: str = ""):
        self._client = client
        self._prefix = prefix

    @classmethod
    def from_url(cls, url: str, prefix: str = "", **kwargs: Any) -> "RedisStore":
        """Create a store from a redis:// URL."""
        client = aioredis.from_url(url, decode_responses=True, **kwargs)
        return cls(client, prefix=prefix)

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def get(self, key: str) -> str | None:
        try:
            return await self._client.get(self._key(key))
        except RedisError as e:
            raise self._unavailable("get", key, e) from e

    async def set_with_ttl(self, key: str, value: str, ttl: timedelta) -> None:
        try:
            await self._client.set(self._key(key), value, px=_millis(ttl))
        except RedisError as e:
            raise self._unavailable("set", key, e) from e

    async def try_claim(self, key: str, ttl: timedelta) -> str | None:
        token = uuid.uuid4().hex
        try:
            won = await self._client.set(self._key(key), token, nx=True, px=_millis(ttl))
        except RedisError as e:
            raise self._unavailable("claim", key, e) from e
        return token if won else None

    async def release_claim(self, key: str, token: str) -> None:
        try:
            await self._client.eval(RELEASE_SCRIPT, 1, self._key(key), token)
        except RedisError as e:
            raise self._unavailable("release", key, e) from e

    async def exists(self, key: str) -> bool:
        try:
            return await self._client.exists(self._key(key)) > 0
        except RedisError as e:
            raise self._unavailable("exists", key, e) from e

    async def delete(self, key: str) -> bool:
        try:
            return await self._client.delete(self._key(key)) > 0
        except RedisError as e:
            raise self._unavailable("delete", key, e) from e

    async def close(self) -> None:
        """Close the underlying connection pool."""
        await self._client.aclose()
        logger.debug("RedisStore closed")

    def _unavailable(self, op: str, key: str, error: Exception) -> StoreUnavailableError:
        logger.error(f"Redis {op} failed for '{key}': {error}")
        return StoreUnavailableError(f"Redis {op} failed for '{key}': {error}")
