"""Tests for the httpx-backed CorsServer."""

from __future__ import annotations

import httpx
import pytest

from conftest import ORIGIN, RESOURCE, RecordingSleep
from preflight.api.client import CorsHTTPClient
from preflight.api.endpoints import HTTPCorsServer, parse_allow_methods, parse_max_age
from preflight.config import Settings
from preflight.errors import CapabilityErrorKind, MethodNotAllowed
from preflight.services.executor import RequestExecutor


def _server(handler, **kwargs) -> HTTPCorsServer:
    client = CorsHTTPClient(transport=httpx.MockTransport(handler), **kwargs)
    return HTTPCorsServer(client, RESOURCE)


def _cors_headers(**extra) -> dict[str, str]:
    headers = {"Access-Control-Allow-Origin": ORIGIN}
    headers.update(extra)
    return headers


def test_parse_allow_methods():
    assert parse_allow_methods("get, Post ,PUT,") == {"GET", "POST", "PUT"}
    assert parse_allow_methods(None) == set()
    assert parse_allow_methods("") == set()


def test_parse_max_age():
    assert parse_max_age("600") == 600
    assert parse_max_age(None) == 5
    assert parse_max_age(None, default=0) == 0
    assert parse_max_age("-1") == 0
    assert parse_max_age("soon") == 0


async def test_negotiate_sends_preflight_headers():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            204,
            headers=_cors_headers(**{
                "Access-Control-Allow-Methods": "GET, POST",
                "Access-Control-Max-Age": "3600",
            }),
        )

    server = _server(handler, auth_token="tok")
    result = await server.negotiate("post", ORIGIN)

    assert result.success
    assert result.allowed_operations == {"GET", "POST"}
    assert result.ttl_seconds == 3600
    assert seen[0].method == "OPTIONS"
    assert seen[0].headers["origin"] == ORIGIN
    assert seen[0].headers["access-control-request-method"] == "POST"
    assert seen[0].headers["authorization"] == "Bearer tok"


async def test_negotiate_wildcard_origin_and_default_max_age():
    def handler(request):
        return httpx.Response(
            200,
            headers={"Access-Control-Allow-Origin": "*", "Access-Control-Allow-Methods": "PUT"},
        )

    result = await _server(handler).negotiate("PUT", ORIGIN)
    assert result.success
    assert result.ttl_seconds == 5


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(403, headers={"Access-Control-Allow-Origin": ORIGIN}),
        httpx.Response(204, headers={"Access-Control-Allow-Origin": "https://evil.example.com"}),
        httpx.Response(204),
    ],
)
async def test_negotiate_failures(response):
    result = await _server(lambda request: response).negotiate("POST", ORIGIN)
    assert not result.success


async def test_negotiate_transport_error():
    def handler(request):
        raise httpx.ConnectError("connection refused")

    result = await _server(handler).negotiate("POST", ORIGIN)
    assert not result.success


async def test_execute_success():
    def handler(request):
        assert request.method == "POST"
        assert request.content == b'{"a":1}'
        return httpx.Response(201, text="created", headers=_cors_headers())

    result = await _server(handler).execute("post", ORIGIN, '{"a":1}')
    assert result.success
    assert not result.rejected
    assert result.status_code == 201
    assert result.body == "created"


async def test_execute_non_cors_error_is_not_rejection():
    def handler(request):
        return httpx.Response(500, text="oops", headers=_cors_headers())

    result = await _server(handler).execute("POST", ORIGIN, "")
    assert not result.success
    assert not result.rejected
    assert result.status_code == 500


@pytest.mark.parametrize(
    ("response", "kind"),
    [
        (httpx.Response(429, headers=_cors_headers()), CapabilityErrorKind.RATE_LIMITED),
        (httpx.Response(200), CapabilityErrorKind.ORIGIN_BLOCKED),
        (httpx.Response(405, headers=_cors_headers()), CapabilityErrorKind.METHOD_NOT_ALLOWED),
    ],
)
async def test_execute_rejections_are_tagged(response, kind):
    result = await _server(lambda request: response).execute("POST", ORIGIN, "")
    assert result.rejected
    assert result.rejection_kind is kind
    assert result.rejection_message


async def test_execute_transport_error():
    def handler(request):
        raise httpx.ReadTimeout("timed out")

    result = await _server(handler).execute("POST", ORIGIN, "")
    assert result.rejected
    assert result.rejection_kind is CapabilityErrorKind.UNKNOWN


async def test_executor_over_http_retries_and_renegotiates():
    calls: list[str] = []

    def handler(request):
        calls.append(request.method)
        if request.method == "OPTIONS":
            return httpx.Response(
                204,
                headers=_cors_headers(**{
                    "Access-Control-Allow-Methods": "GET, POST",
                    "Access-Control-Max-Age": "600",
                }),
            )
        return httpx.Response(405, headers=_cors_headers())

    sleep = RecordingSleep()
    executor = RequestExecutor(Settings(origin=ORIGIN), _server(handler), sleep=sleep)

    with pytest.raises(MethodNotAllowed):
        await executor.send_request("POST", RESOURCE, "{}")

    assert calls == ["OPTIONS", "POST"] * 3
    assert sleep.delays == [0.5, 1.0]
