"""
throttle/limiter.py -- Per-purpose sliding-window quotas for auth attempts.

Each purpose has its own independent quota, keyed by (purpose, identity key):
  sign_in  -- default 5 per 15 minutes (credential guessing)
  sign_up  -- default 1 per 15 minutes (bulk account creation is the cheaper,
              more damaging attack, so it gets the tighter quota)

Quotas are limits-notation strings from Settings, not constants.

Fail-closed rules:
  - A missing identity key is bucketed under UNKNOWN_IDENTITY. Every caller
    without an address shares that single quota.
  - If the counter store is unreachable the attempt is denied with
    degraded=True. The orchestrator turns that into a 503, never a pass.

Every admitted check has already recorded its hit when this returns. Nothing
rolls it back, even if the request is later cancelled or the credentials turn
out to be wrong -- the quota counts attempts, not successes.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from enum import Enum

from limits import RateLimitItem, parse

from core.errors import DependencyUnavailableError
from throttle.store import CounterStore

logger = logging.getLogger("gatehouse.throttle")

UNKNOWN_IDENTITY = "unknown"


class Purpose(str, Enum):
    sign_in = "sign_in"
    sign_up = "sign_up"


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    # Coarse hint in seconds, rounded up to whole minutes. None when unknown.
    retry_after: int | None = None
    # True when the denial comes from a counter-store failure, not the quota.
    degraded: bool = False


class RateLimiter:
    """Admit or deny one attempt per call, consuming quota on admission.

    Usage:
        limiter = RateLimiter(CounterStore(), {Purpose.sign_in: "5/15 minutes"})
        decision = limiter.check_and_consume(Purpose.sign_in, "203.0.113.7")
    """

    def __init__(self, counters: CounterStore, quotas: dict[Purpose, str]) -> None:
        self._counters = counters
        self._quotas: dict[Purpose, RateLimitItem] = {purpose: parse(value) for purpose, value in quotas.items()}

    @property
    def counters(self) -> CounterStore:
        return self._counters

    def quota(self, purpose: Purpose) -> RateLimitItem:
        try:
            return self._quotas[purpose]
        except KeyError:
            raise ValueError(f"No quota configured for purpose {purpose.value!r}") from None

    def check_and_consume(self, purpose: Purpose, identity_key: str | None) -> RateDecision:
        limit = self.quota(purpose)
        key = identity_key or UNKNOWN_IDENTITY
        try:
            if self._counters.acquire(limit, purpose.value, key):
                return RateDecision(allowed=True)
            stats = self._counters.window_stats(limit, purpose.value, key)
        except DependencyUnavailableError:
            logger.error("Counter store unavailable; denying %s for %s", purpose.value, key)
            return RateDecision(allowed=False, degraded=True)

        logger.warning("Rate limit exceeded: purpose=%s key=%s", purpose.value, key)
        return RateDecision(allowed=False, retry_after=_coarse_retry_after(stats.reset_time))

    def attempts(self, purpose: Purpose, identity_key: str | None) -> int:
        """Hits currently counted against (purpose, identity_key)."""
        return self._counters.count(self.quota(purpose), purpose.value, identity_key or UNKNOWN_IDENTITY)

    def reset(self, purpose: Purpose | None = None, identity_key: str | None = None) -> None:
        """Clear one window, or every window when no purpose is given."""
        if purpose is None:
            self._counters.reset()
            return
        self._counters.clear(self.quota(purpose), purpose.value, identity_key or UNKNOWN_IDENTITY)


def _coarse_retry_after(reset_time: float) -> int:
    # Never finer than one minute.
    seconds = max(1.0, reset_time - time.time())
    return int(math.ceil(seconds / 60.0)) * 60
