"""Decide when a preflight round-trip is needed and enforce the allow-list."""

from __future__ import annotations

import logging
from typing import Callable

from preflight.api.endpoints import CorsServer
from preflight.api.models import CacheEntry
from preflight.errors import MethodNotAllowed, NegotiationFailed
from preflight.services.cache import PreflightCache

log = logging.getLogger(__name__)

# State-changing verbs. Everything else is treated as a simple request.
NEGOTIATED_METHODS = frozenset({"POST", "PUT", "DELETE", "PATCH"})


def requires_negotiation(method: str) -> bool:
    return method.upper() in NEGOTIATED_METHODS


class NegotiationGate:
    """Consults the cache and, on a miss, the server's preflight endpoint."""

    def __init__(
        self,
        server: CorsServer,
        cache: PreflightCache,
        on_negotiate: Callable[[], None] | None = None,
    ) -> None:
        self.server = server
        self.cache = cache
        self._on_negotiate = on_negotiate

    async def ensure_negotiated(self, origin: str, resource: str, method: str) -> None:
        """Return when *method* may be sent; raise a CapabilityError otherwise.

        A valid cache entry is trusted as-is: if its allow-list lacks the
        method the request is refused without asking the server again. Only
        invalidation or TTL expiry makes the gate renegotiate.
        """
        if not requires_negotiation(method):
            return

        method = method.upper()
        cached = self.cache.lookup(origin, resource)
        if cached is not None:
            log.debug(
                "Using cached preflight for %s (max-age %ss, allowed: %s)",
                resource,
                cached.ttl_seconds,
                sorted(cached.allowed_operations),
            )
            if not cached.allows(method):
                raise MethodNotAllowed(f"Method {method} not in cached preflight response")
            return

        log.debug("Sending preflight for %s %s", method, resource)
        if self._on_negotiate is not None:
            self._on_negotiate()
        response = await self.server.negotiate(method, origin)

        if not response.success:
            raise NegotiationFailed(f"Preflight request for {resource} failed")
        if method not in response.allowed_operations:
            raise MethodNotAllowed(f"Method {method} not allowed by CORS policy")

        entry = CacheEntry(
            allowed_operations=response.allowed_operations,
            ttl_seconds=max(response.ttl_seconds, 0),
            created_at_ms=self.cache.clock(),
            origin=origin,
        )
        self.cache.store(origin, resource, entry)
        log.info(
            "Preflight for %s succeeded, cached for %ss (allowed: %s)",
            resource,
            entry.ttl_seconds,
            sorted(entry.allowed_operations),
        )
