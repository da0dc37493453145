from __future__ import annotations

import logging
import time
from collections import deque
from threading import Lock
from typing import Callable


logger = logging.getLogger(__name__)


class RequestRateGovernor:
    """Sliding-window cap on AI requests.

    At most ``max_requests`` acquisitions fit in any rolling ``window_seconds``.
    A caller arriving at a full window sleeps until the oldest slot expires
    instead of failing.
    """

    def __init__(
        self,
        *,
        max_requests: int,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._lock = Lock()
        self._max_requests = self._clamp_int(max_requests, 15, 1, 100_000)
        self._window_seconds = max(0.001, float(window_seconds or 60.0))
        self._clock = clock
        self._sleep = sleep
        self._events: deque[float] = deque()
        self._waits_total = 0
        self._waited_seconds_total = 0.0

    @staticmethod
    def _clamp_int(value, default: int, minimum: int, maximum: int) -> int:
        try:
            parsed = int(value)
        except (TypeError, ValueError):
            parsed = default
        return max(minimum, min(maximum, parsed))

    @property
    def max_requests(self) -> int:
        return self._max_requests

    @property
    def window_seconds(self) -> float:
        return self._window_seconds

    def _prune(self, now: float) -> None:
        cutoff = now - self._window_seconds
        while self._events and self._events[0] <= cutoff:
            self._events.popleft()

    def acquire(self) -> float:
        """Take one slot, blocking while the window is full. Returns seconds waited."""
        waited = 0.0
        while True:
            with self._lock:
                now = self._clock()
                self._prune(now)
                if len(self._events) < self._max_requests:
                    self._events.append(now)
                    if waited > 0.0:
                        self._waits_total += 1
                        self._waited_seconds_total += waited
                    return waited
                wait_for = max(0.001, self._events[0] + self._window_seconds - now)

            logger.info(
                "ai_rate_limit_wait",
                extra={"wait_seconds": round(wait_for, 3), "max_requests": self._max_requests},
            )
            self._sleep(wait_for)
            waited += wait_for

    def snapshot(self) -> dict:
        with self._lock:
            self._prune(self._clock())
            return {
                "max_requests": self._max_requests,
                "window_seconds": self._window_seconds,
                "in_window": len(self._events),
                "waits_total": self._waits_total,
                "waited_seconds_total": round(self._waited_seconds_total, 3),
            }

    def reset_for_tests(self) -> None:
        with self._lock:
            self._events.clear()
            self._waits_total = 0
            self._waited_seconds_total = 0.0
