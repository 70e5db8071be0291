"""Request counters and timings owned by one executor."""

from __future__ import annotations

import time
from typing import Callable

RATE_WINDOW_SECONDS = 60.0


class RequestStats:
    """Diagnostic counters. They feed logs and accessors, never control flow."""

    def __init__(
        self,
        max_concurrent_calls: int = 10,
        max_requests_per_minute: int = 100,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_concurrent_calls = max_concurrent_calls
        self.max_requests_per_minute = max_requests_per_minute
        self._clock = clock
        self.total_requests = 0
        self.failed_requests = 0
        self.failed_attempts = 0
        self.negotiations = 0
        self.active_calls = 0
        self.window_started_at: float | None = None
        self.requests_in_window = 0
        self._timings: dict[str, float] = {}

    def record_start(self) -> int:
        """Count a new call and return its sequence number."""
        self.total_requests += 1
        self.active_calls += 1
        self._tick_window()
        return self.total_requests

    def record_finish(self, resource: str, elapsed: float) -> None:
        self.active_calls -= 1
        self._timings[resource] = elapsed

    def record_failed_attempt(self) -> None:
        self.failed_attempts += 1

    def record_failed_request(self) -> None:
        self.failed_requests += 1

    def record_negotiation(self) -> None:
        self.negotiations += 1

    def _tick_window(self) -> None:
        now = self._clock()
        if self.window_started_at is None or now - self.window_started_at >= RATE_WINDOW_SECONDS:
            self.window_started_at = now
            self.requests_in_window = 0
        self.requests_in_window += 1

    @property
    def over_rate_limit(self) -> bool:
        return self.requests_in_window > self.max_requests_per_minute

    @property
    def at_capacity(self) -> bool:
        return self.active_calls > self.max_concurrent_calls

    def last_elapsed(self, resource: str) -> float | None:
        return self._timings.get(resource)

    def timings(self) -> dict[str, float]:
        return dict(self._timings)

    @property
    def status_text(self) -> str:
        return (
            f"Requests: {self.total_requests} "
            f"(failed {self.failed_requests}, active {self.active_calls})"
        )
