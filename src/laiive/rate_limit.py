"""Fixed-window request rate limiting keyed by client address."""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from fastapi import HTTPException, Request, status

RATE_LIMIT_MESSAGE = "Rate limit exceeded. Please try again later."


@dataclass
class RateLimitEntry:
    count: int
    window_reset_at: float


class RateLimiter:
    """Allow at most ``limit`` calls per key within each ``window_seconds``.

    The key table is bounded: expired entries are swept periodically and the
    least recently used key is evicted once ``max_keys`` is reached.
    """

    def __init__(
        self,
        limit: int,
        window_seconds: float,
        *,
        max_keys: int = 10_000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if limit < 1:
            raise ValueError("limit must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.limit = limit
        self.window_seconds = window_seconds
        self._max_keys = max(1, max_keys)
        self._clock = clock
        self._entries: OrderedDict[str, RateLimitEntry] = OrderedDict()
        self._lock = threading.Lock()
        self._next_sweep = clock() + window_seconds

    def __len__(self) -> int:
        return len(self._entries)

    def _sweep(self, now: float) -> None:
        expired = [key for key, entry in self._entries.items() if now > entry.window_reset_at]
        for key in expired:
            del self._entries[key]
        self._next_sweep = now + self.window_seconds

    def check(self, key: str) -> bool:
        """Record one call for ``key`` and report whether it is allowed."""

        with self._lock:
            now = self._clock()
            if now >= self._next_sweep:
                self._sweep(now)

            entry = self._entries.get(key)
            if entry is None or now > entry.window_reset_at:
                self._entries[key] = RateLimitEntry(1, now + self.window_seconds)
                self._entries.move_to_end(key)
                while len(self._entries) > self._max_keys:
                    self._entries.popitem(last=False)
                return True

            self._entries.move_to_end(key)
            if entry.count >= self.limit:
                return False
            entry.count += 1
            return True


def client_key(headers: Mapping[str, str]) -> str:
    """Return the caller address as reported by the fronting proxy."""

    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = headers.get("x-real-ip")
    if real_ip and real_ip.strip():
        return real_ip.strip()
    return "unknown"


def rate_limited(
    name: str, *, extra: Mapping[str, Any] | None = None
) -> Callable[[Request], None]:
    """Build a dependency that enforces the limiter stored under ``name``.

    Limiters live in ``app.state.rate_limiters`` so each application owns its
    own counters. ``extra`` fields are merged into the 429 error body.
    """

    detail: Any = RATE_LIMIT_MESSAGE
    if extra:
        detail = {**extra, "error": RATE_LIMIT_MESSAGE}

    def _dependency(request: Request) -> None:
        limiters: dict[str, RateLimiter] = getattr(
            request.app.state, "rate_limiters", {}
        )
        limiter = limiters.get(name)
        if limiter is None:
            return
        key = client_key(request.headers)
        if not limiter.check(key):
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail=detail,
            )

    return _dependency


__all__ = [
    "RATE_LIMIT_MESSAGE",
    "RateLimitEntry",
    "RateLimiter",
    "client_key",
    "rate_limited",
]
