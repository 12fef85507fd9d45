"""
Unit tests for the Redis bucket store, running its Lua script on fakeredis.
"""
import pytest
import pytest_asyncio
from fakeredis import FakeAsyncRedis, FakeServer

from tollgate.errors import ConfigurationError
from tollgate.ratelimit import InMemoryBucketStore, RateLimiter, RedisBucketStore, Tier, TierPolicy

POLICY = TierPolicy(requests_per_minute=60, requests_per_hour=1000, burst_size=10)


@pytest_asyncio.fixture
async def redis_client():
    client = FakeAsyncRedis(server=FakeServer(), decode_responses=True)
    yield client
    await client.aclose()


@pytest.fixture
def store(redis_client):
    return RedisBucketStore(client=redis_client)


class TestRedisBucketStore:
    """Test cases for RedisBucketStore."""

    async def test_burst_then_deny_then_refill(self, store):
        decisions = [await store.take("ip:1.2.3.4", POLICY, 1000.0) for _ in range(10)]
        assert all(d.allowed for d in decisions)
        assert decisions[0].remaining == 9
        assert decisions[-1].remaining == 0

        denied = await store.take("ip:1.2.3.4", POLICY, 1000.0)
        assert not denied.allowed
        assert 0 < denied.retry_after <= 1.0 + 1e-6
        assert denied.limit == 10

        assert (await store.take("ip:1.2.3.4", POLICY, 1000.0 + denied.retry_after)).allowed

    async def test_hour_window_alone_caps_at_burst(self, store):
        policy = TierPolicy(requests_per_minute=0, requests_per_hour=3600, burst_size=2)
        assert (await store.take("api:7", policy, 0.0)).allowed
        assert (await store.take("api:7", policy, 0.0)).allowed
        denied = await store.take("api:7", policy, 0.0)
        assert not denied.allowed
        assert denied.retry_after == pytest.approx(1.0)

    async def test_clock_going_backwards_adds_nothing(self, store):
        for _ in range(10):
            await store.take("ip:k", POLICY, 1000.0)
        assert not (await store.take("ip:k", POLICY, 900.0)).allowed

    async def test_keys_are_independent(self, store):
        for _ in range(10):
            await store.take("ip:a", POLICY, 0.0)
        assert not (await store.take("ip:a", POLICY, 0.0)).allowed
        assert (await store.take("ip:b", POLICY, 0.0)).allowed
        assert (await store.take("user:a", POLICY, 0.0)).allowed

    async def test_bucket_expires_after_idle_ttl(self, store, redis_client):
        await store.take("ip:1.2.3.4", POLICY, 0.0)
        key = store._redis_key("ip:1.2.3.4")
        assert key.startswith("tollgate:rate:ip:")
        assert "1.2.3.4" not in key
        ttl = await redis_client.ttl(key)
        assert 0 < ttl <= POLICY.idle_ttl()

    async def test_disabled_policy_is_unlimited(self, store, redis_client):
        policy = TierPolicy(requests_per_minute=0, requests_per_hour=0, burst_size=0)
        assert (await store.take("ai:1", policy, 0.0)).allowed
        assert await redis_client.keys("*") == []

    async def test_agrees_with_in_memory_store(self, store):
        memory = InMemoryBucketStore()
        policy = TierPolicy(requests_per_minute=30, requests_per_hour=1000, burst_size=3)
        times = [0, 0, 0, 0, 1, 2, 2, 4, 4, 4, 10, 30, 30, 30, 30, 60, 61, 62, 90, 120]
        for now in times:
            expected = await memory.take("auth:x", policy, float(now))
            actual = await store.take("auth:x", policy, float(now))
            assert actual.allowed == expected.allowed, now

    async def test_limiter_over_redis(self, store):
        limiter = RateLimiter({Tier.AUTH: TierPolicy(5, 20, 2)}, store, clock=lambda: 0.0)
        assert (await limiter.allow(Tier.AUTH, "10.0.0.1")).allowed
        assert (await limiter.allow(Tier.AUTH, "10.0.0.1")).allowed
        assert not (await limiter.allow(Tier.AUTH, "10.0.0.1")).allowed

    def test_requires_url_or_client(self):
        with pytest.raises(ConfigurationError):
            RedisBucketStore()
