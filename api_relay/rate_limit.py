"""
Rate limiting for the /oauth/* routes. In-memory sliding window per key (client IP).
"""
import math
import threading
import time
from typing import Callable

_WINDOW_SECONDS = 60


class SlidingWindowLimiter:
    def __init__(self, limit: int, window_seconds: int = _WINDOW_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._hits: dict[str, list[float]] = {}
        self._lock = threading.Lock()

    def _sweep(self, cutoff: float) -> None:
        # Caller holds the lock. Keys with no hit inside the window are forgotten.
        stale = [key for key, timestamps in self._hits.items() if not timestamps or timestamps[-1] <= cutoff]
        for key in stale:
            del self._hits[key]

    def check_and_consume(self, key: str) -> tuple[bool, int | None]:
        """
        Check if the key is under the limit for the sliding window; if so, record this request.
        Returns (allowed, retry_after_seconds). When not allowed, retry_after_seconds is the
        suggested Retry-After value (>= 1).
        """
        if self.limit <= 0:
            return True, None
        now = self._clock()
        cutoff = now - self.window_seconds
        with self._lock:
            self._sweep(cutoff)
            timestamps = [t for t in self._hits.get(key, ()) if t > cutoff]
            if len(timestamps) >= self.limit:
                self._hits[key] = timestamps
                oldest = min(timestamps)
                retry_after = max(1, math.ceil(self.window_seconds - (now - oldest)))
                return False, retry_after
            timestamps.append(now)
            self._hits[key] = timestamps
            return True, None

    def tracked_keys(self) -> int:
        with self._lock:
            return len(self._hits)
