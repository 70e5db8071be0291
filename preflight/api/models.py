"""Pydantic models for preflight negotiation and request results."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, field_validator

from preflight.errors import CapabilityErrorKind


def _upper_methods(methods: set[str] | frozenset[str] | list[str]) -> frozenset[str]:
    return frozenset(m.strip().upper() for m in methods if m and m.strip())


class CacheEntry(BaseModel):
    """Allow-list granted by one successful negotiation."""

    model_config = ConfigDict(frozen=True)

    allowed_operations: frozenset[str] = Field(default_factory=frozenset)
    ttl_seconds: int = Field(ge=0)
    created_at_ms: int
    origin: str

    @field_validator("allowed_operations", mode="before")
    @classmethod
    def normalize_methods(cls, v):
        return _upper_methods(v)

    @property
    def expires_at_ms(self) -> int:
        return self.created_at_ms + self.ttl_seconds * 1000

    def is_valid(self, now_ms: int) -> bool:
        return now_ms < self.expires_at_ms

    def allows(self, method: str) -> bool:
        return method.upper() in self.allowed_operations


class RequestAttempt(BaseModel):
    """One pass through the retry loop; never persisted."""

    method: str
    resource: str
    body: str = ""
    attempt: int = Field(ge=1)


class NegotiationResponse(BaseModel):
    success: bool
    allowed_operations: set[str] = Field(default_factory=set)
    ttl_seconds: int = 0

    @field_validator("allowed_operations", mode="before")
    @classmethod
    def normalize_methods(cls, v):
        return set(_upper_methods(v))


class RequestResponse(BaseModel):
    success: bool
    status_code: int = 0
    body: str = ""
    rejected: bool = False
    rejection_message: str = ""
    rejection_kind: CapabilityErrorKind | None = None  # set by whoever rejected


class ApiResponse(BaseModel):
    """Successful response handed back to the caller."""

    status_code: int
    body: str = ""
    received_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
