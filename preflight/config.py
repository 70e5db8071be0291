"""Load .env and settings.yaml, expose client configuration."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from urllib.parse import urlsplit

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

log = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent


def _load_env() -> None:
    env_path = PROJECT_ROOT / ".env"
    load_dotenv(env_path)


def _load_yaml() -> dict:
    settings_path = PROJECT_ROOT / "settings.yaml"
    if settings_path.exists():
        try:
            with open(settings_path) as f:
                return yaml.safe_load(f) or {}
        except yaml.YAMLError:
            log.warning("Failed to parse settings.yaml, using defaults")
            return {}
    return {}


class Settings(BaseModel):
    """Fixed for the lifetime of the executor built from it."""

    origin: str
    max_attempts: int = Field(default=3, ge=1)
    base_delay_ms: int = Field(default=500, ge=0)
    # Advisory only: exceeding these logs a warning, nothing is refused.
    max_concurrent_calls: int = Field(default=10, ge=1)
    max_requests_per_minute: int = Field(default=100, ge=1)
    timeout: float = Field(default=30.0, gt=0)
    auth_token: str = ""
    default_max_age: int = Field(default=5, ge=0)

    @field_validator("origin")
    @classmethod
    def check_origin(cls, v: str) -> str:
        v = v.strip().rstrip("/")
        parts = urlsplit(v)
        if not parts.scheme or not parts.netloc:
            raise ValueError(f"origin must look like scheme://host[:port], got {v!r}")
        return v

    @field_validator("auth_token")
    @classmethod
    def strip_auth_token(cls, v: str) -> str:
        return v.strip()

    @property
    def base_delay(self) -> float:
        """Backoff unit in seconds."""
        return self.base_delay_ms / 1000


def load_settings(**overrides) -> Settings:
    _load_env()
    raw = _load_yaml()
    origin = os.getenv("PREFLIGHT_ORIGIN")
    if origin:
        raw["origin"] = origin
    token = os.getenv("PREFLIGHT_AUTH_TOKEN")
    if token:
        raw["auth_token"] = token
    raw.update({k: v for k, v in overrides.items() if v is not None})
    return Settings(**raw)
