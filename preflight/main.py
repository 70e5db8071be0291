"""Entry point: send one cross-origin request from the command line."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from pydantic import ValidationError

from preflight.api.client import CorsHTTPClient
from preflight.api.endpoints import HTTPCorsServer
from preflight.config import Settings, load_settings
from preflight.errors import CapabilityError
from preflight.services.executor import RequestExecutor

log = logging.getLogger(__name__)


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="preflight", description=__doc__)
    parser.add_argument("method", help="HTTP method, e.g. GET or POST")
    parser.add_argument("url", help="target URL")
    parser.add_argument("body", nargs="?", default="", help="request body")
    parser.add_argument("--origin", help="override PREFLIGHT_ORIGIN")
    parser.add_argument("--max-attempts", type=int)
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser.parse_args(argv)


async def run(settings: Settings, method: str, url: str, body: str) -> int:
    client = CorsHTTPClient(auth_token=settings.auth_token, timeout=settings.timeout)
    server = HTTPCorsServer(client, url, default_max_age=settings.default_max_age)
    executor = RequestExecutor(settings, server)
    try:
        response = await executor.send_request(method, url, body)
    except CapabilityError as exc:
        print(f"CORS error ({exc.kind.value}): {exc}", file=sys.stderr)
        return 1
    finally:
        await client.close()
        log.info(executor.stats.status_text)
        for key, value in executor.connection_stats().items():
            log.debug("%s: %s", key, value)

    print(f"{response.status_code} {response.body}")
    return 0


def main(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        settings = load_settings(origin=args.origin, max_attempts=args.max_attempts)
    except ValidationError as exc:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in exc.errors())
        print(f"Invalid configuration ({fields}), check settings.yaml, PREFLIGHT_ORIGIN or --origin", file=sys.stderr)
        sys.exit(2)
    sys.exit(asyncio.run(run(settings, args.method, args.url, args.body)))


if __name__ == "__main__":
    main()
