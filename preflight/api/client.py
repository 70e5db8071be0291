"""Async httpx wrapper that sends preflight and actual requests."""

from __future__ import annotations

from typing import Any

import httpx


class CorsHTTPClient:
    """Async HTTP client that carries the caller's Origin on every request."""

    def __init__(
        self,
        auth_token: str = "",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._auth_token = auth_token
        kwargs: dict[str, Any] = {"timeout": timeout}
        if transport is not None:
            kwargs["transport"] = transport
        self._client = httpx.AsyncClient(**kwargs)

    async def close(self) -> None:
        await self._client.aclose()

    def _headers(self, origin: str) -> dict[str, str]:
        headers = {"Origin": origin}
        if self._auth_token:
            headers["Authorization"] = f"Bearer {self._auth_token}"
        return headers

    async def preflight(self, url: str, method: str, origin: str) -> httpx.Response:
        """Send an OPTIONS request announcing the method we intend to use."""
        headers = self._headers(origin)
        headers["Access-Control-Request-Method"] = method.upper()
        return await self._client.request("OPTIONS", url, headers=headers)

    async def send(self, method: str, url: str, origin: str, body: str = "") -> httpx.Response:
        return await self._client.request(
            method.upper(),
            url,
            headers=self._headers(origin),
            content=body.encode() if body else None,
        )
