"""Negotiation and request endpoints the orchestrator talks to."""

from __future__ import annotations

import logging
from typing import Protocol

import httpx

from preflight.api.client import CorsHTTPClient
from preflight.api.models import NegotiationResponse, RequestResponse
from preflight.errors import CapabilityErrorKind

log = logging.getLogger(__name__)

# Browsers fall back to 5 seconds when Access-Control-Max-Age is absent.
DEFAULT_MAX_AGE = 5


class CorsServer(Protocol):
    async def negotiate(self, method: str, origin: str) -> NegotiationResponse: ...

    async def execute(self, method: str, origin: str, body: str) -> RequestResponse: ...


def _origin_allowed(response: httpx.Response, origin: str) -> bool:
    allow_origin = response.headers.get("access-control-allow-origin")
    if allow_origin is None:
        return False
    allow_origin = allow_origin.strip()
    return allow_origin == "*" or allow_origin.rstrip("/") == origin.rstrip("/")


def parse_allow_methods(value: str | None) -> set[str]:
    if not value:
        return set()
    return {m.strip().upper() for m in value.split(",") if m.strip()}


def parse_max_age(value: str | None, default: int = DEFAULT_MAX_AGE) -> int:
    if value is None:
        return default
    try:
        return max(int(value.strip()), 0)
    except ValueError:
        return 0


class HTTPCorsServer:
    """CorsServer backed by a real cross-origin URL.

    One instance targets one URL; the preflight outcome is read from the
    ``Access-Control-*`` response headers.
    """

    def __init__(
        self,
        client: CorsHTTPClient,
        url: str,
        default_max_age: int = DEFAULT_MAX_AGE,
    ) -> None:
        self.client = client
        self.url = url
        self.default_max_age = default_max_age

    async def negotiate(self, method: str, origin: str) -> NegotiationResponse:
        try:
            response = await self.client.preflight(self.url, method, origin)
        except httpx.HTTPError as exc:
            log.warning("Preflight to %s failed: %s", self.url, exc)
            return NegotiationResponse(success=False)

        if not response.is_success or not _origin_allowed(response, origin):
            return NegotiationResponse(success=False)

        return NegotiationResponse(
            success=True,
            allowed_operations=parse_allow_methods(
                response.headers.get("access-control-allow-methods")
            ),
            ttl_seconds=parse_max_age(
                response.headers.get("access-control-max-age"), self.default_max_age
            ),
        )

    async def execute(self, method: str, origin: str, body: str) -> RequestResponse:
        try:
            response = await self.client.send(method, self.url, origin, body)
        except httpx.HTTPError as exc:
            log.warning("%s %s failed: %s", method, self.url, exc)
            return _rejection(0, CapabilityErrorKind.UNKNOWN, f"Transport error: {exc}")

        if response.status_code == 429:
            return _rejection(
                response.status_code,
                CapabilityErrorKind.RATE_LIMITED,
                "Server rate limit exceeded",
            )
        if not _origin_allowed(response, origin):
            return _rejection(
                response.status_code,
                CapabilityErrorKind.ORIGIN_BLOCKED,
                f"Origin {origin} not allowed by CORS policy",
            )
        if response.status_code == 405:
            return _rejection(
                response.status_code,
                CapabilityErrorKind.METHOD_NOT_ALLOWED,
                f"Method {method.upper()} not allowed by CORS policy",
            )

        return RequestResponse(
            success=response.is_success,
            status_code=response.status_code,
            body=response.text,
        )


def _rejection(status_code: int, kind: CapabilityErrorKind, message: str) -> RequestResponse:
    return RequestResponse(
        success=False,
        status_code=status_code,
        rejected=True,
        rejection_message=message,
        rejection_kind=kind,
    )
