"""
throttle/store.py -- Shared counter store for rate-limit windows.

Thin repository over a `limits` storage backend using the moving-window
strategy. "memory://" keeps windows in-process (single instance, tests);
"redis://host:port" shares them across every gateway instance so quotas hold
under horizontal scale-out.

Atomicity: acquire() is an increment-and-compare executed inside the backend
(a per-key lock for memory storage, a Lua script for Redis). Concurrent
callers on the same key can never all observe a stale count.

Expiry: each hit carries its own timestamp and falls out of the window on its
own. There is no explicit delete and no reset-on-success.

Availability: backends are created with wrap_exceptions=True so any driver
failure surfaces as limits.errors.StorageError, which is translated to
DependencyUnavailableError here. Redis calls get socket timeouts.

Usage:
    counters = CounterStore("memory://")
    counters.acquire(parse("5/15 minutes"), "sign_in", "203.0.113.7")  # True / False
    counters.count(parse("5/15 minutes"), "sign_in", "203.0.113.7")    # hits in window
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from limits import RateLimitItem
from limits.errors import StorageError
from limits.storage import storage_from_string
from limits.strategies import MovingWindowRateLimiter
from limits.util import WindowStats

from core.errors import DependencyUnavailableError

logger = logging.getLogger("gatehouse.throttle")


class CounterStore:
    def __init__(self, uri: str = "memory://", timeout: float = 5.0) -> None:
        options: dict = {"wrap_exceptions": True}
        if uri.startswith(("redis://", "rediss://", "redis+")):
            options["socket_timeout"] = timeout
            options["socket_connect_timeout"] = timeout
        self.uri = uri
        self._storage = storage_from_string(uri, **options)
        self._windows = MovingWindowRateLimiter(self._storage)

    @contextmanager
    def _unavailable_on_failure(self, operation: str) -> Iterator[None]:
        try:
            yield
        except StorageError as exc:
            logger.error("Counter store %s failed: %r", operation, exc.storage_error)
            raise DependencyUnavailableError(cause=f"counter store {operation}: {exc.storage_error!r}") from exc

    def acquire(self, limit: RateLimitItem, *identifiers: str) -> bool:
        """Record one hit if the window has room. Returns False (no hit recorded) if full."""
        with self._unavailable_on_failure("acquire"):
            return self._windows.hit(limit, *identifiers)

    def window_stats(self, limit: RateLimitItem, *identifiers: str) -> WindowStats:
        """Return (reset_time, remaining) for the window without recording a hit."""
        with self._unavailable_on_failure("window_stats"):
            return self._windows.get_window_stats(limit, *identifiers)

    def count(self, limit: RateLimitItem, *identifiers: str) -> int:
        """Number of hits currently inside the trailing window."""
        return limit.amount - self.window_stats(limit, *identifiers).remaining

    def clear(self, limit: RateLimitItem, *identifiers: str) -> None:
        with self._unavailable_on_failure("clear"):
            self._windows.clear(limit, *identifiers)

    def reset(self) -> None:
        """Drop every window. Operator and test use only."""
        with self._unavailable_on_failure("reset"):
            self._storage.reset()

    def ping(self) -> bool:
        """Return True if the backend is reachable. Used by /health."""
        try:
            return bool(self._storage.check())
        except StorageError:
            return False
