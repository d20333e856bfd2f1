import threading
import time
from dataclasses import dataclass


@dataclass
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset: int  # seconds until the current window closes


class FixedWindowRateLimiter:
    """In-memory fixed window counter.

    Every key gets ``limit`` hits per ``window_seconds``; the count resets when a new
    window starts. Windows are aligned to multiples of ``window_seconds``.
    """

    def __init__(self, limit: int, window_seconds: int, clock=time.time):
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._counters: dict[str, tuple[int, int]] = {}  # {key: (window_start, count)}
        self._lock = threading.Lock()

    def hit(self, key: str) -> RateLimitResult:
        now = self._clock()
        window_start = int(now // self.window_seconds) * self.window_seconds
        reset = max(int(window_start + self.window_seconds - now), 1)

        with self._lock:
            start, count = self._counters.get(key, (window_start, 0))
            if start != window_start:
                count = 0
            if count >= self.limit:
                self._counters[key] = (window_start, count)
                return RateLimitResult(False, self.limit, 0, reset)

            count += 1
            self._counters[key] = (window_start, count)
            # Drop counters from windows that are already over
            if len(self._counters) > 10_000:
                self._counters = {
                    k: v for k, v in self._counters.items() if v[0] == window_start
                }

        return RateLimitResult(True, self.limit, self.limit - count, reset)


class NoOpRateLimiter:
    limit = 0

    def hit(self, key: str) -> RateLimitResult:
        return RateLimitResult(True, 0, 0, 0)
