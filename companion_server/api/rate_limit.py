"""Per-route token buckets. Excess requests are rejected, never queued."""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Dict

from fastapi import Depends, Request

from companion_server.api.deps import client_host, require_app
from companion_server.core.errors import RateLimited

# idle buckets are dropped once the table grows past this
MAX_BUCKETS = 10_000


@dataclass
class TokenBucket:
    capacity: float
    refill_per_s: float
    tokens: float
    updated_at: float

    def take(self, now: float) -> float:
        """Consume one token; returns 0 on success or seconds until one is available."""
        elapsed = max(0.0, now - self.updated_at)
        self.tokens = min(self.capacity, self.tokens + elapsed * self.refill_per_s)
        self.updated_at = now

        if self.tokens >= 1.0:
            self.tokens -= 1.0
            return 0.0
        return (1.0 - self.tokens) / self.refill_per_s

    def is_full(self, now: float) -> bool:
        return self.tokens + (now - self.updated_at) * self.refill_per_s >= self.capacity


class RateLimiter:
    """`max_requests` per `window_s`, per key."""

    def __init__(
        self,
        max_requests: int,
        window_s: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_requests = max_requests
        self.window_s = window_s
        self._clock = clock
        self._buckets: Dict[str, TokenBucket] = {}

    def hit(self, key: str) -> None:
        now = self._clock()
        bucket = self._buckets.get(key)
        if bucket is None:
            if len(self._buckets) >= MAX_BUCKETS:
                self._prune(now)
            bucket = TokenBucket(
                capacity=float(self.max_requests),
                refill_per_s=self.max_requests / self.window_s,
                tokens=float(self.max_requests),
                updated_at=now,
            )
            self._buckets[key] = bucket

        retry_after = bucket.take(now)
        if retry_after > 0:
            raise RateLimited(retry_after)

    def _prune(self, now: float) -> None:
        for key in [k for k, b in self._buckets.items() if b.is_full(now)]:
            del self._buckets[key]


# =========================
# FASTAPI DEPENDENCIES
# =========================

def _limiter(request: Request, name: str, max_requests: int, window_s: float) -> RateLimiter:
    limiters: Dict[str, RateLimiter] = request.app.state.rate_limiters
    limiter = limiters.get(name)
    if limiter is None:
        limiter = limiters[name] = RateLimiter(max_requests, window_s)
    return limiter


def limit_by_client(name: str, max_requests: int, window_s: float):
    async def dependency(request: Request) -> None:
        _limiter(request, name, max_requests, window_s).hit(client_host(request))

    return dependency


def limit_by_app(name: str, max_requests: int, window_s: float):
    """Runs after the bearer check and keys on the authenticated app name."""

    async def dependency(request: Request, app_name: str = Depends(require_app)) -> None:
        _limiter(request, name, max_requests, window_s).hit(app_name or client_host(request))

    return dependency
