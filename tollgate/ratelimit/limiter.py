"""
Admission control over the tiered token buckets.
"""
import asyncio
import logging
import time
from typing import Callable, Dict, FrozenSet, Iterable, Optional, Tuple

from tollgate.errors import RateLimited

from .backends import BucketStore
from .bucket import Decision, TierPolicy
from .tiers import Tier

logger = logging.getLogger(__name__)

# Tiers that deny when their bucket store cannot answer in time.
FAIL_CLOSED_TIERS: FrozenSet[Tier] = frozenset({Tier.IP, Tier.AUTH})


class RateLimiter:
    """Token bucket admission control keyed by ``(tier, identity)``.

    Tiers are independent and additive: a request subject to several tiers
    must be admitted by each of them.
    """

    def __init__(
        self,
        policies: Dict[Tier, TierPolicy],
        store: BucketStore,
        *,
        timeout: float = 2.0,
        fail_closed: Iterable[Tier] = FAIL_CLOSED_TIERS,
        enabled: bool = True,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.policies = dict(policies)
        self.store = store
        self.timeout = timeout
        self.fail_closed = frozenset(fail_closed)
        self.enabled = enabled
        self.clock = clock

    def policy(self, tier: Tier) -> Optional[TierPolicy]:
        return self.policies.get(tier)

    async def allow(self, tier: Tier, key: str, now: Optional[float] = None) -> Decision:
        """Try to take one token from the ``tier`` bucket for ``key``."""
        policy = self.policies.get(tier)
        if not self.enabled or policy is None or not policy.enabled:
            return Decision.unlimited()

        now = self.clock() if now is None else now
        try:
            return await asyncio.wait_for(
                self.store.take(f"{tier.value}:{key}", policy, now), timeout=self.timeout
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if tier in self.fail_closed:
                logger.warning(f"Rate limit store unavailable for tier {tier.value}, denying: {e!r}")
                return Decision(allowed=False, retry_after=1.0, limit=policy.burst_size)
            logger.warning(f"Rate limit store unavailable for tier {tier.value}, admitting: {e!r}")
            return Decision(allowed=True, limit=policy.burst_size)

    async def check(
        self, checks: Iterable[Tuple[Tier, str]], now: Optional[float] = None
    ) -> Decision:
        """Evaluate several tiers in order, stopping at the first denial.

        Returns the denial, or the admitted decision with the fewest tokens left.
        """
        now = self.clock() if now is None else now
        tightest: Optional[Decision] = None
        for tier, key in checks:
            decision = await self.allow(tier, key, now)
            if not decision.allowed:
                logger.info(f"Rate limit exceeded: tier={tier.value} retry_after={decision.retry_after:.2f}s")
                return decision
            if decision.limit and (tightest is None or decision.remaining < tightest.remaining):
                tightest = decision
        return tightest or Decision.unlimited()

    async def enforce(
        self, checks: Iterable[Tuple[Tier, str]], now: Optional[float] = None
    ) -> Decision:
        """Like :meth:`check` but raises :class:`RateLimited` on denial."""
        decision = await self.check(checks, now)
        if not decision.allowed:
            raise RateLimited(retry_after=decision.retry_after)
        return decision

    async def evict_idle(self, now: Optional[float] = None) -> int:
        return await self.store.evict_idle(self.clock() if now is None else now)
