"""
Bucket storage backends.

``InMemoryBucketStore`` keeps buckets per process, each guarded by its own
lock so unrelated keys never contend. ``RedisBucketStore`` shares buckets
across instances and runs the whole refill-and-consume step in one Lua script.
"""
import hashlib
import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, Optional, Tuple

import redis.asyncio as aioredis

from tollgate.errors import ConfigurationError

from .bucket import BucketState, Decision, TierPolicy, is_full, refill, take

logger = logging.getLogger(__name__)


class BucketStore(ABC):
    """Storage for token buckets keyed by ``tier:identity``."""

    @abstractmethod
    async def take(self, key: str, policy: TierPolicy, now: float) -> Decision:
        """Atomically refill the bucket for ``key`` and try to consume a token."""

    async def evict_idle(self, now: float) -> int:
        """Drop buckets that have refilled completely. Returns the count removed."""
        return 0

    async def close(self) -> None:
        pass


class InMemoryBucketStore(BucketStore):
    """Process-local buckets with a lock per key."""

    def __init__(self) -> None:
        self._buckets: Dict[str, Tuple[TierPolicy, BucketState]] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, key: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    def take_sync(self, key: str, policy: TierPolicy, now: float) -> Decision:
        while True:
            lock = self._lock_for(key)
            with lock:
                # Eviction may have retired this lock while we waited on it.
                if self._locks.get(key) is not lock:
                    continue
                entry = self._buckets.get(key)
                state = entry[1] if entry and entry[0] == policy else None
                decision, new_state = take(policy, state, now)
                if new_state is not None:
                    self._buckets[key] = (policy, new_state)
                return decision

    async def take(self, key: str, policy: TierPolicy, now: float) -> Decision:
        return self.take_sync(key, policy, now)

    async def evict_idle(self, now: float) -> int:
        removed = 0
        with self._registry_lock:
            for key in list(self._buckets):
                lock = self._locks.get(key)
                if lock is None or not lock.acquire(blocking=False):
                    continue
                try:
                    policy, state = self._buckets[key]
                    if is_full(policy, refill(policy, state, now)):
                        del self._buckets[key]
                        del self._locks[key]
                        removed += 1
                finally:
                    lock.release()
        if removed:
            logger.debug(f"Evicted {removed} idle rate limit buckets")
        return removed

    def __len__(self) -> int:
        return len(self._buckets)


class RedisBucketStore(BucketStore):
    """Buckets shared through Redis, one hash per key."""

    # Atomic refill + consume across the minute and hour windows.
    # A capacity of 0 marks a window as not configured.
    _DUAL_BUCKET_SCRIPT = """
local key = KEYS[1]
local now = tonumber(ARGV[1])
local m_cap = tonumber(ARGV[2])
local m_rate = tonumber(ARGV[3])
local h_cap = tonumber(ARGV[4])
local h_rate = tonumber(ARGV[5])
local ttl = tonumber(ARGV[6])
local eps = 1e-9

local data = redis.call('HMGET', key, 'm', 'h', 'ts')
local m = tonumber(data[1]) or m_cap
local h = tonumber(data[2]) or h_cap
local last = tonumber(data[3]) or now

local delta = math.max(0, now - last)
if m_cap > 0 then m = math.min(m_cap, m + delta * m_rate) end
if h_cap > 0 then h = math.min(h_cap, h + delta * h_rate) end

local wait = 0
if m_cap > 0 and m < 1 - eps then wait = math.max(wait, (1 - m) / m_rate) end
if h_cap > 0 and h < 1 - eps then wait = math.max(wait, (1 - h) / h_rate) end

local allowed = 0
if wait == 0 then
  allowed = 1
  if m_cap > 0 then m = m - 1 end
  if h_cap > 0 then h = h - 1 end
end

local remaining = -1
if m_cap > 0 then remaining = math.floor(m + eps) end
if h_cap > 0 then
  local hr = math.floor(h + eps)
  if remaining < 0 or hr < remaining then remaining = hr end
end

redis.call('HSET', key, 'm', tostring(m), 'h', tostring(h), 'ts', tostring(math.max(now, last)))
redis.call('EXPIRE', key, ttl)
return {allowed, tostring(wait), math.max(remaining, 0)}
"""

    def __init__(
        self,
        redis_url: Optional[str] = None,
        *,
        socket_timeout: float = 2.0,
        prefix: str = "tollgate:rate",
        client: Optional[aioredis.Redis] = None,
    ):
        if client is None and not redis_url:
            raise ConfigurationError("RedisBucketStore needs a redis_url or a client")
        self.redis_url = redis_url
        self.prefix = prefix
        self.client = client or aioredis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        self._script = self.client.register_script(self._DUAL_BUCKET_SCRIPT)

    def _redis_key(self, key: str) -> str:
        # Hash the identity so arbitrary input cannot inject key separators.
        tier, _, identity = key.partition(":")
        digest = hashlib.sha256(identity.encode()).hexdigest()
        return f"{self.prefix}:{tier}:{digest}"

    async def take(self, key: str, policy: TierPolicy, now: float) -> Decision:
        if not policy.enabled:
            return Decision.unlimited()
        minute, hour = policy.minute_window, policy.hour_window
        allowed, wait, remaining = await self._script(
            keys=[self._redis_key(key)],
            args=[
                now,
                minute.capacity if minute else 0,
                minute.rate if minute else 0,
                hour.capacity if hour else 0,
                hour.rate if hour else 0,
                policy.idle_ttl(),
            ],
        )
        return Decision(
            allowed=bool(int(allowed)),
            retry_after=float(wait),
            remaining=int(remaining),
            limit=policy.burst_size,
        )

    async def close(self) -> None:
        await self.client.aclose()


def build_bucket_store(backend: str, redis_url: Optional[str] = None, *, socket_timeout: float = 2.0) -> BucketStore:
    if backend == "redis":
        if not redis_url:
            raise ConfigurationError("REDIS_URL is required when RATE_LIMIT_BACKEND=redis")
        logger.info("Using Redis rate limit buckets")
        return RedisBucketStore(redis_url, socket_timeout=socket_timeout)
    return InMemoryBucketStore()
