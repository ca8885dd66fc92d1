"""
Rate limiting. In-memory fixed window per key (e.g. per IP).
Used for GET /verify and POST /session/retrieve to slow down link replay and code guessing.
"""
import math
import threading
import time
from typing import Callable

_WINDOW_SECONDS = 60


class FixedWindowRateLimiter:
    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._windows: dict[str, tuple[int, float]] = {}  # key -> (count, window_reset_at)
        self._lock = threading.Lock()

    def check_and_consume(
        self,
        key: str,
        limit: int,
        window_seconds: int = _WINDOW_SECONDS,
    ) -> tuple[bool, int | None]:
        """
        Count this request against the key's current window.
        Returns (allowed, retry_after_seconds); retry_after is >= 1 when not allowed.
        """
        if limit <= 0:
            return True, None
        now = self._clock()
        with self._lock:
            count, reset_at = self._windows.get(key, (0, now + window_seconds))
            if now >= reset_at:
                count, reset_at = 0, now + window_seconds
            if count >= limit:
                self._windows[key] = (count, reset_at)
                return False, max(1, math.ceil(reset_at - now))
            self._windows[key] = (count + 1, reset_at)
            self._prune(now)
            return True, None

    def _prune(self, now: float) -> None:
        stale = [k for k, (_, reset_at) in self._windows.items() if now >= reset_at]
        for k in stale:
            del self._windows[k]

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()
