"""In-memory preflight cache keyed by (origin, resource) with TTL expiry."""

from __future__ import annotations

import logging
import time
from typing import Callable

from preflight.api.models import CacheEntry

log = logging.getLogger(__name__)

CacheKey = tuple[str, str]


def now_millis() -> int:
    return int(time.time() * 1000)


class PreflightCache:
    """Negotiated allow-lists with lazy per-entry expiry.

    Entries live in one index keyed by ``(origin, resource)``. The
    resource-only view records which origin last wrote each resource and is
    only ever touched by the same methods that write the primary index, so
    the two cannot drift apart.
    """

    def __init__(self, clock: Callable[[], int] = now_millis) -> None:
        self.clock = clock
        self._entries: dict[CacheKey, CacheEntry] = {}
        self._last_writer: dict[str, str] = {}

    def lookup(self, origin: str, resource: str) -> CacheEntry | None:
        entry = self._entries.get((origin, resource))
        if entry is None:
            return None
        if not entry.is_valid(self.clock()):
            log.debug("Cached preflight for %s %s expired, removing", origin, resource)
            self._remove(origin, resource)
            return None
        return entry

    def lookup_resource(self, resource: str) -> CacheEntry | None:
        """Entry for whichever origin last negotiated this resource."""
        origin = self._last_writer.get(resource)
        if origin is None:
            return None
        return self.lookup(origin, resource)

    def store(self, origin: str, resource: str, entry: CacheEntry) -> None:
        self._entries[(origin, resource)] = entry
        self._last_writer[resource] = origin

    def invalidate(self, resource: str, origin: str | None = None) -> None:
        """Drop the last writer's entry for *resource*.

        When *origin* is given its own entry is dropped too, even if another
        origin wrote the resource more recently.
        """
        last_writer = self._last_writer.get(resource)
        if last_writer is not None:
            self._remove(last_writer, resource)
        if origin is not None and origin != last_writer:
            self._remove(origin, resource)
        log.info("Cache invalidated for %s", resource)

    def size(self) -> int:
        return len(self._entries)

    def _remove(self, origin: str, resource: str) -> None:
        self._entries.pop((origin, resource), None)
        if self._last_writer.get(resource) == origin:
            del self._last_writer[resource]
