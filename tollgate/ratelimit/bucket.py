"""
Token bucket arithmetic.

Everything here is a pure function of ``(policy, state, now)``; storage and
locking live in :mod:`tollgate.ratelimit.backends`.
"""
import math
from dataclasses import dataclass
from typing import Optional, Tuple

# Absorbs float error so a bucket refilled to exactly one token admits.
EPSILON = 1e-9


@dataclass(frozen=True)
class Window:
    capacity: float
    rate: float  # tokens per second


@dataclass(frozen=True)
class TierPolicy:
    requests_per_minute: int
    requests_per_hour: int
    burst_size: int

    @property
    def enabled(self) -> bool:
        return self.burst_size >= 1 and (
            self.requests_per_minute > 0 or self.requests_per_hour > 0
        )

    @property
    def minute_window(self) -> Optional[Window]:
        if not self.enabled or self.requests_per_minute <= 0:
            return None
        return Window(capacity=float(self.burst_size), rate=self.requests_per_minute / 60.0)

    @property
    def hour_window(self) -> Optional[Window]:
        """The hourly budget.

        When a minute window shapes bursts the hour window may hold the whole
        hourly budget; on its own it is capped at the burst size.
        """
        if not self.enabled or self.requests_per_hour <= 0:
            return None
        capacity = self.requests_per_hour if self.requests_per_minute > 0 else self.burst_size
        return Window(capacity=float(capacity), rate=self.requests_per_hour / 3600.0)

    def idle_ttl(self) -> int:
        """Seconds after which an untouched bucket is full again."""
        windows = [w for w in (self.minute_window, self.hour_window) if w]
        if not windows:
            return 1
        return max(1, math.ceil(max(w.capacity / w.rate for w in windows)))


@dataclass(frozen=True)
class BucketState:
    minute_tokens: float
    hour_tokens: float
    updated_at: float


@dataclass(frozen=True)
class Decision:
    allowed: bool
    retry_after: float = 0.0
    remaining: int = 0
    limit: int = 0

    @classmethod
    def unlimited(cls) -> "Decision":
        return cls(allowed=True)


def full_state(policy: TierPolicy, now: float) -> BucketState:
    minute, hour = policy.minute_window, policy.hour_window
    return BucketState(
        minute_tokens=minute.capacity if minute else 0.0,
        hour_tokens=hour.capacity if hour else 0.0,
        updated_at=now,
    )


def _refill(window: Optional[Window], tokens: float, elapsed: float) -> float:
    if window is None:
        return 0.0
    return min(window.capacity, max(0.0, tokens) + elapsed * window.rate)


def refill(policy: TierPolicy, state: Optional[BucketState], now: float) -> BucketState:
    if state is None:
        return full_state(policy, now)
    # A clock that steps backwards must not mint tokens.
    elapsed = max(0.0, now - state.updated_at)
    return BucketState(
        minute_tokens=_refill(policy.minute_window, state.minute_tokens, elapsed),
        hour_tokens=_refill(policy.hour_window, state.hour_tokens, elapsed),
        updated_at=max(now, state.updated_at),
    )


def is_full(policy: TierPolicy, state: BucketState) -> bool:
    minute, hour = policy.minute_window, policy.hour_window
    return (minute is None or state.minute_tokens >= minute.capacity - EPSILON) and (
        hour is None or state.hour_tokens >= hour.capacity - EPSILON
    )


def take(
    policy: TierPolicy, state: Optional[BucketState], now: float
) -> Tuple[Decision, Optional[BucketState]]:
    """Refill lazily, then try to consume one token from every window.

    A request is admitted only when every configured window holds a token.
    On denial ``retry_after`` is the longest wait among the short windows.
    """
    if not policy.enabled:
        return Decision.unlimited(), state

    state = refill(policy, state, now)
    pairs = [
        (w, tokens)
        for w, tokens in (
            (policy.minute_window, state.minute_tokens),
            (policy.hour_window, state.hour_tokens),
        )
        if w is not None
    ]

    waits = [(1.0 - tokens) / w.rate for w, tokens in pairs if tokens < 1.0 - EPSILON]
    if waits:
        remaining = min(int(tokens) for _, tokens in pairs)
        return (
            Decision(allowed=False, retry_after=max(waits), remaining=max(0, remaining),
                     limit=policy.burst_size),
            state,
        )

    state = BucketState(
        minute_tokens=state.minute_tokens - 1.0 if policy.minute_window else 0.0,
        hour_tokens=state.hour_tokens - 1.0 if policy.hour_window else 0.0,
        updated_at=state.updated_at,
    )
    remaining = min(
        int(tokens + EPSILON)
        for w, tokens in (
            (policy.minute_window, state.minute_tokens),
            (policy.hour_window, state.hour_tokens),
        )
        if w is not None
    )
    return Decision(allowed=True, remaining=max(0, remaining), limit=policy.burst_size), state
