"""
Unit tests for tiered admission control.
"""
import asyncio
from concurrent.futures import ThreadPoolExecutor

import pytest

from tollgate.errors import RateLimited
from tollgate.ratelimit import (
    BucketStore,
    InMemoryBucketStore,
    RateLimiter,
    Tier,
    TierPolicy,
)

POLICIES = {
    Tier.IP: TierPolicy(requests_per_minute=60, requests_per_hour=1000, burst_size=10),
    Tier.USER: TierPolicy(requests_per_minute=120, requests_per_hour=2000, burst_size=20),
    Tier.AUTH: TierPolicy(requests_per_minute=5, requests_per_hour=20, burst_size=2),
    Tier.API: TierPolicy(requests_per_minute=100, requests_per_hour=1500, burst_size=15),
}


class BrokenStore(BucketStore):
    async def take(self, key, policy, now):
        raise ConnectionError("store is down")


class SlowStore(BucketStore):
    async def take(self, key, policy, now):
        await asyncio.sleep(1)


@pytest.fixture
def limiter():
    return RateLimiter(POLICIES, InMemoryBucketStore(), clock=lambda: 0.0)


class TestRateLimiter:
    """Test cases for RateLimiter."""

    async def test_boundary(self, limiter):
        for _ in range(10):
            assert (await limiter.allow(Tier.IP, "1.2.3.4", now=0.0)).allowed

        denied = await limiter.allow(Tier.IP, "1.2.3.4", now=0.0)
        assert not denied.allowed
        assert denied.retry_after > 0

        assert (await limiter.allow(Tier.IP, "1.2.3.4", now=denied.retry_after)).allowed

    async def test_keys_and_tiers_are_independent(self, limiter):
        for _ in range(2):
            assert (await limiter.allow(Tier.AUTH, "1.2.3.4")).allowed
        assert not (await limiter.allow(Tier.AUTH, "1.2.3.4")).allowed
        assert (await limiter.allow(Tier.AUTH, "5.6.7.8")).allowed
        assert (await limiter.allow(Tier.IP, "1.2.3.4")).allowed

    async def test_tiers_are_additive(self, limiter):
        checks = [(Tier.IP, "1.2.3.4"), (Tier.AUTH, "1.2.3.4")]
        assert (await limiter.check(checks)).allowed
        assert (await limiter.check(checks)).allowed

        denied = await limiter.check(checks)
        assert not denied.allowed
        assert denied.limit == 2

    async def test_check_reports_tightest_tier(self, limiter):
        decision = await limiter.check([(Tier.IP, "a"), (Tier.AUTH, "a")])
        assert decision.limit == 2
        assert decision.remaining == 1

    async def test_enforce_raises_with_retry_after(self, limiter):
        await limiter.enforce([(Tier.AUTH, "k")])
        await limiter.enforce([(Tier.AUTH, "k")])
        with pytest.raises(RateLimited) as exc_info:
            await limiter.enforce([(Tier.AUTH, "k")])
        assert exc_info.value.retry_after == pytest.approx(12.0)
        assert exc_info.value.status_code == 429

    async def test_unknown_tier_and_disabled_limiter_allow(self):
        limiter = RateLimiter(POLICIES, InMemoryBucketStore(), enabled=False)
        for _ in range(50):
            assert (await limiter.allow(Tier.AUTH, "k")).allowed
        limiter = RateLimiter({}, InMemoryBucketStore())
        assert (await limiter.allow(Tier.AI, "k")).allowed

    @pytest.mark.parametrize("tier", [Tier.IP, Tier.AUTH])
    async def test_storage_failure_fails_closed_for_ip_and_auth(self, tier):
        limiter = RateLimiter(POLICIES, BrokenStore())
        decision = await limiter.allow(tier, "k")
        assert not decision.allowed
        assert decision.retry_after > 0

    @pytest.mark.parametrize("tier", [Tier.USER, Tier.API])
    async def test_storage_failure_fails_open_for_other_tiers(self, tier):
        limiter = RateLimiter(POLICIES, BrokenStore())
        assert (await limiter.allow(tier, "k")).allowed

    async def test_storage_timeout(self):
        limiter = RateLimiter(POLICIES, SlowStore(), timeout=0.05)
        assert not (await limiter.allow(Tier.AUTH, "k")).allowed
        assert (await limiter.allow(Tier.API, "k")).allowed

    async def test_concurrent_tasks_admit_exactly_burst(self, limiter):
        decisions = await asyncio.gather(
            *(limiter.allow(Tier.USER, "user-1", now=0.0) for _ in range(100))
        )
        assert sum(d.allowed for d in decisions) == 20

    async def test_evict_idle(self, limiter):
        await limiter.allow(Tier.IP, "busy", now=0.0)
        await limiter.allow(Tier.IP, "idle", now=0.0)
        for _ in range(9):
            await limiter.allow(Tier.IP, "busy", now=5.0)

        assert await limiter.evict_idle(now=5.0) == 1
        assert len(limiter.store) == 1


class TestInMemoryBucketStore:
    """Test cases for the per-key locked store."""

    def test_concurrent_threads_admit_exactly_burst(self):
        store = InMemoryBucketStore()
        policy = POLICIES[Tier.IP]
        with ThreadPoolExecutor(max_workers=16) as pool:
            results = list(pool.map(lambda _: store.take_sync("ip:1.2.3.4", policy, 0.0), range(500)))
        assert sum(d.allowed for d in results) == 10

    def test_policy_change_starts_a_fresh_bucket(self):
        store = InMemoryBucketStore()
        small = TierPolicy(requests_per_minute=60, requests_per_hour=1000, burst_size=1)
        large = TierPolicy(requests_per_minute=60, requests_per_hour=1000, burst_size=5)
        assert store.take_sync("k", small, 0.0).allowed
        assert not store.take_sync("k", small, 0.0).allowed
        assert store.take_sync("k", large, 0.0).allowed
