"""Tiered token bucket rate limiting."""
from .backends import BucketStore, InMemoryBucketStore, RedisBucketStore, build_bucket_store
from .bucket import BucketState, Decision, TierPolicy, take
from .limiter import FAIL_CLOSED_TIERS, RateLimiter
from .tiers import KeySource, RouteClass, RouteTable, Tier

__all__ = [
    "BucketState",
    "BucketStore",
    "Decision",
    "FAIL_CLOSED_TIERS",
    "InMemoryBucketStore",
    "KeySource",
    "RateLimiter",
    "RedisBucketStore",
    "RouteClass",
    "RouteTable",
    "Tier",
    "TierPolicy",
    "build_bucket_store",
    "take",
]
