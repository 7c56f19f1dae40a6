"""
Per-key request limiting for the slot listing endpoints.

One limiter lives for the lifetime of the application (``app.state``) and is
handed to routes through a dependency, so tests can swap or reset it.

limit=0 disables limiting.
"""

import logging
import time
from collections import defaultdict, deque
from threading import Lock
from typing import Callable

from fastapi import HTTPException, Request, status

from telehealth.core import config

logger = logging.getLogger(__name__)


class SlidingWindowRateLimiter:
    def __init__(self, limit: int, window_seconds: int, clock: Callable[[], float] = time.monotonic):
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._hits: dict[str, deque] = defaultdict(deque)
        self._lock = Lock()
        self._last_sweep = clock()

    def check(self, key: str) -> tuple[bool, int | None]:
        """Record a hit for ``key``. Returns (allowed, retry_after_seconds)."""
        if self.limit <= 0:
            return True, None

        now = self._clock()
        cutoff = now - self.window_seconds

        with self._lock:
            if now - self._last_sweep >= self.window_seconds:
                self._sweep(cutoff)
                self._last_sweep = now

            hits = self._hits[key]
            while hits and hits[0] <= cutoff:
                hits.popleft()

            if len(hits) >= self.limit:
                retry_after = max(int(hits[0] + self.window_seconds - now) + 1, 1)
                return False, retry_after

            hits.append(now)
            return True, None

    def _sweep(self, cutoff: float) -> None:
        # Keys come from request parameters; drop those with no hit left in the window.
        expired = [key for key, hits in self._hits.items() if not hits or hits[-1] <= cutoff]
        for key in expired:
            del self._hits[key]

    @property
    def tracked_keys(self) -> int:
        with self._lock:
            return len(self._hits)

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()


def build_slot_list_limiter() -> SlidingWindowRateLimiter:
    return SlidingWindowRateLimiter(config.SLOT_LIST_RATE_LIMIT, config.SLOT_LIST_RATE_WINDOW_SECONDS)


def enforce_slot_list_limit(limiter: SlidingWindowRateLimiter, provider_id: int) -> None:
    allowed, retry_after = limiter.check(f'slots:{provider_id}')
    if allowed:
        return

    logger.warning('Rate limiting slot listing for provider %s', provider_id)
    raise HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail='Too many requests. Please try again later.',
        headers={'Retry-After': str(retry_after)},
    )


def get_slot_list_limiter(request: Request) -> SlidingWindowRateLimiter:
    limiter = getattr(request.app.state, 'slot_list_limiter', None)
    if limiter is None:
        limiter = build_slot_list_limiter()
        request.app.state.slot_list_limiter = limiter
    return limiter
