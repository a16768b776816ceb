"""
Tests for the key-value store backends.
"""

import asyncio
from datetime import timedelta

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from pricing.services.errors import StoreUnavailableError
from pricing.services.redis_store import RedisStore
from tests.conftest import StubRedis


class TestMemoryStore:
    """Tests for the in-process store."""

    async def test_get_missing_key(self, store):
        assert await store.get("nothing") is None
        assert not await store.exists("nothing")

    async def test_set_and_get(self, store):
        await store.set_with_ttl("k", "v", timedelta(seconds=5))
        assert await store.get("k") == "v"
        assert await store.exists("k")

    async def test_value_expires_after_ttl(self, store, clock):
        await store.set_with_ttl("k", "v", timedelta(seconds=5))
        clock.advance(4.9)
        assert await store.get("k") == "v"
        clock.advance(0.2)
        assert await store.get("k") is None
        assert not await store.exists("k")

    async def test_overwrite_resets_ttl(self, store, clock):
        await store.set_with_ttl("k", "v1", timedelta(seconds=5))
        clock.advance(4)
        await store.set_with_ttl("k", "v2", timedelta(seconds=5))
        clock.advance(4)
        assert await store.get("k") == "v2"

    async def test_claim_is_exclusive(self, store):
        assert await store.try_claim("lock/k", timedelta(seconds=10)) is not None
        assert await store.try_claim("lock/k", timedelta(seconds=10)) is None

    async def test_release_allows_new_claim(self, store):
        token = await store.try_claim("lock/k", timedelta(seconds=10))
        await store.release_claim("lock/k", token)
        assert await store.try_claim("lock/k", timedelta(seconds=10)) is not None

    async def test_abandoned_claim_expires(self, store, clock):
        assert await store.try_claim("lock/k", timedelta(seconds=10)) is not None
        clock.advance(11)
        assert await store.try_claim("lock/k", timedelta(seconds=10)) is not None

    async def test_stale_owner_cannot_release_new_claim(self, store, clock):
        old = await store.try_claim("lock/k", timedelta(seconds=10))
        clock.advance(11)
        new = await store.try_claim("lock/k", timedelta(seconds=10))
        assert new is not None and new != old

        # The first owner finishes late and releases with its expired token
        await store.release_claim("lock/k", old)
        assert await store.exists("lock/k")
        assert await store.try_claim("lock/k", timedelta(seconds=10)) is None

        await store.release_claim("lock/k", new)
        assert not await store.exists("lock/k")

    async def test_concurrent_claims_have_one_winner(self, store):
        results = await asyncio.gather(
            *(store.try_claim("lock/k", timedelta(seconds=10)) for _ in range(50))
        )
        assert sum(token is not None for token in results) == 1

    async def test_delete_and_clear(self, store):
        await store.set_with_ttl("a", "1", timedelta(seconds=5))
        await store.set_with_ttl("b", "2", timedelta(seconds=5))
        assert await store.delete("a")
        assert not await store.delete("a")
        await store.clear()
        assert await store.get("b") is None


class DownRedis:
    """Redis client whose server is unreachable."""

    def __getattr__(self, name):
        async def fail(*args, **kwargs):
            raise RedisConnectionError("Error 111 connecting to localhost:6379")

        return fail


class TestRedisStore:
    """Tests for the Redis store against a stub client."""

    async def test_set_uses_millisecond_ttl_and_prefix(self):
        client = StubRedis()
        store = RedisStore(client, prefix="app:")
        await store.set_with_ttl("k", "v", timedelta(seconds=2.5))
        assert client.set_calls[-1] == {"key": "app:k", "value": "v", "px": 2500, "nx": False}
        assert await store.get("k") == "v"
        assert await store.exists("k")

    async def test_claim_uses_set_nx(self):
        client = StubRedis()
        store = RedisStore(client)
        token = await store.try_claim("lock/k", timedelta(seconds=10))
        assert token is not None
        assert client.set_calls[-1]["nx"] is True
        assert client.set_calls[-1]["value"] == token
        assert await store.try_claim("lock/k", timedelta(seconds=10)) is None

    async def test_release_frees_own_claim(self):
        client = StubRedis()
        store = RedisStore(client)
        token = await store.try_claim("lock/k", timedelta(seconds=10))
        await store.release_claim("lock/k", token)
        assert not await store.exists("lock/k")

    async def test_release_leaves_claim_won_by_someone_else(self):
        client = StubRedis()
        store = RedisStore(client)
        old = await store.try_claim("lock/k", timedelta(seconds=10))
        # Our claim expired and another process took it over
        del client.data["lock/k"]
        new = await store.try_claim("lock/k", timedelta(seconds=10))
        assert new is not None and new != old

        await store.release_claim("lock/k", old)
        assert client.data["lock/k"] == new

    async def test_one_store_shared_by_two_owners(self):
        # Tokens travel with the claim, not the store instance
        client = StubRedis()
        first, second = RedisStore(client), RedisStore(client)
        token = await first.try_claim("lock/k", timedelta(seconds=10))
        assert await second.try_claim("lock/k", timedelta(seconds=10)) is None
        await second.release_claim("lock/k", "not-the-token")
        assert await first.exists("lock/k")
        await second.release_claim("lock/k", token)
        assert not await first.exists("lock/k")

    async def test_delete(self):
        store = RedisStore(StubRedis())
        await store.set_with_ttl("k", "v", timedelta(seconds=1))
        assert await store.delete("k")
        assert not await store.delete("k")

    @pytest.mark.parametrize(
        "call",
        [
            lambda s: s.get("k"),
            lambda s: s.set_with_ttl("k", "v", timedelta(seconds=1)),
            lambda s: s.try_claim("k", timedelta(seconds=1)),
            lambda s: s.release_claim("k", "token"),
            lambda s: s.exists("k"),
            lambda s: s.delete("k"),
        ],
    )
    async def test_backend_errors_become_store_unavailable(self, call):
        store = RedisStore(DownRedis())
        with pytest.raises(StoreUnavailableError):
            await call(store)

    async def test_close(self):
        client = StubRedis()
        await RedisStore(client).close()
        assert client.closed
