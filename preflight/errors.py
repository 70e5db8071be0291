"""Capability errors raised by the negotiation gate and request executor."""

from __future__ import annotations

from enum import Enum


class CapabilityErrorKind(str, Enum):
    METHOD_NOT_ALLOWED = "method_not_allowed"
    ORIGIN_BLOCKED = "origin_blocked"
    NEGOTIATION_FAILED = "negotiation_failed"
    RATE_LIMITED = "rate_limited"
    UNKNOWN = "unknown"


class CapabilityError(Exception):
    """A policy rejection or negotiation breakdown.

    The kind is fixed by the subclass that was raised at the point of
    failure; it is never inferred from the message.
    """

    kind: CapabilityErrorKind = CapabilityErrorKind.UNKNOWN

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message


class MethodNotAllowed(CapabilityError):
    kind = CapabilityErrorKind.METHOD_NOT_ALLOWED


class OriginBlocked(CapabilityError):
    kind = CapabilityErrorKind.ORIGIN_BLOCKED


class NegotiationFailed(CapabilityError):
    kind = CapabilityErrorKind.NEGOTIATION_FAILED


class RateLimited(CapabilityError):
    kind = CapabilityErrorKind.RATE_LIMITED


class UnknownRejection(CapabilityError):
    kind = CapabilityErrorKind.UNKNOWN


_ERRORS_BY_KIND: dict[CapabilityErrorKind, type[CapabilityError]] = {
    cls.kind: cls
    for cls in (MethodNotAllowed, OriginBlocked, NegotiationFailed, RateLimited, UnknownRejection)
}


def error_for_kind(kind: CapabilityErrorKind | None, message: str) -> CapabilityError:
    """Build the exception matching a rejection tag (untagged → unknown)."""
    cls = _ERRORS_BY_KIND.get(kind or CapabilityErrorKind.UNKNOWN, UnknownRejection)
    return cls(message)
