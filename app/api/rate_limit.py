"""Per-user sliding-window limits for starting generations.

In-process only.  With several workers each one counts separately, which
matches the generation queue (also one per process).
"""

import time
from collections import deque

from app.config import settings


class RateLimiter:
    """At most ``max_requests`` accepted hits per key in any ``window_seconds``.

    Rejected hits are not recorded, so a client that keeps retrying is let
    back in as soon as its oldest accepted hit leaves the window.
    """

    # Every N calls, drop keys with no hits left in the window
    _PRUNE_INTERVAL: int = 500

    def __init__(self, max_requests: int = 60, window_seconds: float = 60) -> None:
        self._max = max_requests
        self._window = window_seconds
        self._hits: dict[str, deque[float]] = {}
        self._calls = 0

    def _expire(self, hits: deque[float], now: float) -> deque[float]:
        while hits and hits[0] <= now - self._window:
            hits.popleft()
        return hits

    def _prune(self, now: float) -> None:
        for key in [k for k, hits in self._hits.items() if not self._expire(hits, now)]:
            del self._hits[key]

    def is_allowed(self, key: str) -> bool:
        """Record a hit for *key* if it is under the limit; return whether it was."""
        now = time.monotonic()
        self._calls += 1
        if self._calls % self._PRUNE_INTERVAL == 0:
            self._prune(now)

        hits = self._expire(self._hits.setdefault(key, deque()), now)
        if len(hits) >= self._max:
            return False
        hits.append(now)
        return True

    def remaining(self, key: str) -> int:
        hits = self._hits.get(key)
        used = len(self._expire(hits, time.monotonic())) if hits else 0
        return max(0, self._max - used)

    def reset(self) -> None:
        self._hits.clear()
        self._calls = 0


generation_limiter = RateLimiter(
    max_requests=settings.GENERATE_RATE_LIMIT_PER_HOUR,
    window_seconds=3600,
)
