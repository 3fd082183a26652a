from __future__ import annotations

import argparse
import json
import sys
from typing import Any, Dict, Optional, Sequence
from urllib import error, request

import uvicorn

from dnsd.config import get_settings
from dnsd.services.paths import skydns_path


def _api_request(
    *,
    base_url: str,
    path: str,
    method: str = "GET",
    json_body: Optional[Dict[str, Any]] = None,
) -> str:
    url = base_url.rstrip("/") + path
    headers: Dict[str, str] = {"Accept": "application/json, text/plain"}
    data: Optional[bytes] = None

    if json_body is not None:
        data = json.dumps(json_body).encode("utf-8")
        headers["Content-Type"] = "application/json"

    req = request.Request(url=url, method=method.upper(), data=data, headers=headers)
    try:
        with request.urlopen(req, timeout=60) as response:
            return response.read().decode("utf-8")
    except error.HTTPError as exc:
        payload = exc.read().decode("utf-8").strip()
        raise RuntimeError(f"HTTP {exc.code}: {payload}") from exc


def topology_payload(master: str, slaves: Sequence[str]) -> Dict[str, Any]:
    return {
        "master": {"address": master},
        "slaves": [{"address": slave} for slave in slaves],
    }


def cmd_serve(args: argparse.Namespace) -> int:
    settings = get_settings()
    uvicorn.run(
        "dnsd.main:app",
        host=args.host or settings.server_host,
        port=args.port or settings.server_port,
        log_config=None,
    )
    return 0


def cmd_update(args: argparse.Namespace) -> int:
    body = _api_request(
        base_url=args.api_url,
        path="/dns",
        method="PUT",
        json_body=topology_payload(args.master, args.slave),
    )
    print(body.strip())
    return 0


def cmd_records(args: argparse.Namespace) -> int:
    body = _api_request(base_url=args.api_url, path="/dns/records")
    print(json.dumps(json.loads(body), indent=2, sort_keys=True))
    return 0


def cmd_path(args: argparse.Namespace) -> int:
    print(skydns_path(args.hostname))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="dnsd", description="SkyDNS record publisher")
    parser.add_argument("--api-url", default="http://127.0.0.1:8080")

    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the publisher HTTP service")
    serve.add_argument("--host")
    serve.add_argument("--port", type=int)
    serve.set_defaults(func=cmd_serve)

    update = sub.add_parser("update", help="Publish a master/slaves topology")
    update.add_argument("--master", required=True, help="Master hostname, e.g. leader.service.docker")
    update.add_argument("--slave", action="append", default=[], help="Slave hostname (repeatable)")
    update.set_defaults(func=cmd_update)

    records = sub.add_parser("records", help="Show records currently kept alive")
    records.set_defaults(func=cmd_records)

    path = sub.add_parser("path", help="Print the etcd key a hostname is published under")
    path.add_argument("hostname")
    path.set_defaults(func=cmd_path)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        exit_code = args.func(args)
    except Exception as exc:  # noqa: BLE001
        print(f"error: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc
    raise SystemExit(exit_code)


if __name__ == "__main__":
    main()
