"""Orchestrator: preflight when needed, send, retry with cache invalidation."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable

from preflight.api.endpoints import CorsServer
from preflight.api.models import ApiResponse, RequestAttempt
from preflight.config import Settings
from preflight.errors import CapabilityError, error_for_kind
from preflight.services.cache import PreflightCache, now_millis
from preflight.services.gate import NegotiationGate
from preflight.services.stats import RequestStats

log = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class RequestExecutor:
    """Drives one cross-origin request end to end, with bounded retries."""

    def __init__(
        self,
        settings: Settings,
        server: CorsServer,
        cache: PreflightCache | None = None,
        stats: RequestStats | None = None,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], int] = now_millis,
    ) -> None:
        self.settings = settings
        self.server = server
        self.cache = cache or PreflightCache(clock=clock)
        self.stats = stats or RequestStats(
            max_concurrent_calls=settings.max_concurrent_calls,
            max_requests_per_minute=settings.max_requests_per_minute,
        )
        self.gate = NegotiationGate(
            server,
            self.cache,
            on_negotiate=self.stats.record_negotiation,
        )
        self._sleep = sleep

    @property
    def origin(self) -> str:
        return self.settings.origin

    async def send_request(self, method: str, resource: str, body: str = "") -> ApiResponse:
        """Send *method* to *resource*, negotiating first if required.

        Raises the last CapabilityError once ``max_attempts`` are used up.
        """
        started = time.monotonic()
        number = self.stats.record_start()
        log.info("Request #%d: %s %s", number, method.upper(), resource)

        if self.stats.over_rate_limit:
            log.warning(
                "Client-side rate limit exceeded (%d requests in window, ceiling %d)",
                self.stats.requests_in_window,
                self.stats.max_requests_per_minute,
            )
        if self.stats.at_capacity:
            log.warning(
                "Concurrent calls above ceiling (%d/%d)",
                self.stats.active_calls,
                self.stats.max_concurrent_calls,
            )

        try:
            return await self._send_with_retry(method, resource, body)
        except CapabilityError:
            self.stats.record_failed_request()
            raise
        finally:
            self.stats.record_finish(resource, time.monotonic() - started)

    async def _send_with_retry(self, method: str, resource: str, body: str) -> ApiResponse:
        max_attempts = self.settings.max_attempts
        last_error: CapabilityError | None = None
        for attempt in range(1, max_attempts + 1):
            request = RequestAttempt(method=method, resource=resource, body=body, attempt=attempt)
            try:
                return await self._attempt(request)
            except CapabilityError as exc:
                last_error = exc
                self.stats.record_failed_attempt()
                if attempt < max_attempts:
                    delay = self.settings.base_delay * attempt
                    log.warning(
                        "Request failed (attempt %d/%d): %s, retrying in %.0fms",
                        attempt,
                        max_attempts,
                        exc,
                        delay * 1000,
                    )
                    # Our own entry may not be the one the resource view points at.
                    self.cache.invalidate(resource, origin=self.origin)
                    await self._sleep(delay)

        log.warning(
            "All %d attempts for %s %s exhausted: %s (%s)",
            max_attempts,
            method.upper(),
            resource,
            last_error,
            last_error.kind.value,
        )
        raise last_error

    async def _attempt(self, request: RequestAttempt) -> ApiResponse:
        await self.gate.ensure_negotiated(self.origin, request.resource, request.method)

        log.debug("Sending %s %s (attempt %d)", request.method.upper(), request.resource, request.attempt)
        response = await self.server.execute(request.method.upper(), self.origin, request.body)
        if response.rejected:
            raise error_for_kind(response.rejection_kind, response.rejection_message)
        return ApiResponse(status_code=response.status_code, body=response.body)

    # ── Diagnostics ──

    @property
    def cache_size(self) -> int:
        return self.cache.size()

    def request_timings(self) -> dict[str, float]:
        return self.stats.timings()

    def connection_stats(self) -> dict[str, Any]:
        return {
            "active_calls": self.stats.active_calls,
            "max_concurrent_calls": self.stats.max_concurrent_calls,
            "total_requests": self.stats.total_requests,
            "failed_requests": self.stats.failed_requests,
            "failed_attempts": self.stats.failed_attempts,
            "negotiations": self.stats.negotiations,
            "cache_size": self.cache_size,
        }
