"""Shared test fixtures."""

from __future__ import annotations

import pytest

from preflight.api.models import NegotiationResponse, RequestResponse
from preflight.config import Settings
from preflight.errors import CapabilityErrorKind
from preflight.services.cache import PreflightCache
from preflight.services.executor import RequestExecutor

ORIGIN = "https://webapp.example.com"
RESOURCE = "https://api.server.com/data"


class FakeClock:
    """Epoch-millis clock that only moves when told to."""

    def __init__(self, now: int = 1_700_000_000_000) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class PolicyServer:
    """In-memory CorsServer whose policy can flip after N handled calls.

    Every negotiate and execute call is counted. The first
    ``policy_change_after`` calls see the full policy; after that the
    ``revoked`` methods are dropped from the allow-list and rejected on execute.
    """

    def __init__(
        self,
        allowed: tuple[str, ...] = ("GET", "POST", "PUT"),
        max_age: int = 3600,
        policy_change_after: int | None = None,
        revoked: tuple[str, ...] = ("POST",),
    ) -> None:
        self.allowed = set(allowed)
        self.max_age = max_age
        self.policy_change_after = policy_change_after
        self.revoked = set(revoked)
        self.negotiate_fails = False
        self.request_count = 0
        self.negotiate_calls: list[tuple[str, str]] = []
        self.execute_calls: list[tuple[str, str, str]] = []

    def _current_policy(self) -> set[str]:
        if self.policy_change_after is not None and self.request_count > self.policy_change_after:
            return self.allowed - self.revoked
        return set(self.allowed)

    async def negotiate(self, method: str, origin: str) -> NegotiationResponse:
        self.request_count += 1
        self.negotiate_calls.append((method, origin))
        if self.negotiate_fails:
            return NegotiationResponse(success=False)
        return NegotiationResponse(
            success=True,
            allowed_operations=self._current_policy(),
            ttl_seconds=self.max_age,
        )

    async def execute(self, method: str, origin: str, body: str) -> RequestResponse:
        self.request_count += 1
        self.execute_calls.append((method, origin, body))
        if method.upper() not in self._current_policy():
            return RequestResponse(
                success=False,
                status_code=403,
                rejected=True,
                rejection_message=f"Method {method} not allowed by CORS policy",
                rejection_kind=CapabilityErrorKind.METHOD_NOT_ALLOWED,
            )
        return RequestResponse(success=True, status_code=200, body='{"ok":true}')


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock) -> PreflightCache:
    return PreflightCache(clock=clock)


@pytest.fixture
def settings() -> Settings:
    return Settings(origin=ORIGIN, max_attempts=3, base_delay_ms=500)


@pytest.fixture
def server() -> PolicyServer:
    return PolicyServer()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def executor(settings, server, cache, sleep, clock) -> RequestExecutor:
    return RequestExecutor(settings, server, cache=cache, sleep=sleep, clock=clock)
