#!/usr/bin/env python3
"""
aeclient - authenticated GET/POST against an App Engine style app from the command line.
"""

import argparse
import logging
import sys
from typing import Dict, List, Optional

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s", stream=sys.stderr
)


def parse_headers(raw_headers: Optional[List[str]]) -> Dict[str, List[str]]:
    """Parse repeated `-H "Name: value"` options into a header multimap (order kept)."""
    headers: Dict[str, List[str]] = {}
    for raw in raw_headers or []:
        name, sep, value = raw.partition(":")
        name = name.strip()
        if not sep or not name:
            raise ValueError(f"Malformed header (expected 'Name: value'): {raw!r}")
        headers.setdefault(name, []).append(value.strip())
    return headers


def build_client(args: argparse.Namespace):  # type: ignore[no-untyped-def]
    """Build an EngineClient from env config, with CLI flags taking precedence."""
    from dataclasses import replace

    from aeclient.client.engine import EngineClient
    from aeclient.config import load_client_config

    cfg = load_client_config()
    overrides = {}
    if args.app_url:
        overrides["app_url"] = args.app_url
    if args.account:
        overrides["account"] = args.account
    if args.token:
        overrides["auth_token"] = args.token
    if overrides:
        cfg = replace(cfg, **overrides)
    return EngineClient.from_config(cfg)


def read_body(args: argparse.Namespace) -> bytes:
    if args.data_file:
        with open(args.data_file, "rb") as f:
            return f.read()
    return (args.data or "").encode("utf-8")


def print_response(status: int, headers: Dict[str, List[str]], body: bytes) -> None:
    print(f"HTTP {status}", file=sys.stderr)
    for name, values in headers.items():
        for value in values:
            print(f"{name}: {value}", file=sys.stderr)
    sys.stdout.buffer.write(body)
    sys.stdout.flush()


def run_sync(client, method: str, uri: str, headers: Dict[str, List[str]], body: Optional[bytes]) -> int:  # type: ignore[no-untyped-def]
    if method == "POST":
        response = client.post(uri, headers, body or b"")
    else:
        response = client.get(uri, headers)
    if response is None:
        print(f"Error: {client.error_message()}", file=sys.stderr)
        return 1
    print_response(response.status, response.headers, response.body)
    return 0


class _ConsoleCallback:
    """Prints background progress to stderr and remembers how the request ended."""

    def __init__(self) -> None:
        self.exit_code = 1

    def report_error(self, why: str) -> None:
        print(f"Error: {why}", file=sys.stderr)
        self.exit_code = 1

    def report_progress(self, message: str) -> None:
        print(f"... {message}", file=sys.stderr)

    def done(self, status: int, headers: Dict[str, List[str]], body: bytes) -> None:
        print_response(status, headers, body)
        self.exit_code = 0


def run_background(client, method: str, uri: str, headers: Dict[str, List[str]], body: Optional[bytes]) -> int:  # type: ignore[no-untyped-def]
    import asyncio

    callback = _ConsoleCallback()

    async def _go() -> None:
        if method == "POST":
            await client.background_post(uri, headers, body or b"", callback)
        else:
            await client.background_get(uri, headers, callback)

    asyncio.run(_go())
    return callback.exit_code


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Authenticated GET/POST against an App Engine style app",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Non-interactive, with a token obtained earlier
  AEC_AUTH_TOKEN=... python main.py --app-url https://your-app.appspot.com/ get https://your-app.appspot.com/api/items

  # Interactive, prompting for a token, running in the background with progress
  python main.py --app-url https://your-app.appspot.com/ --account me@example.com --background \\
      post https://your-app.appspot.com/api/items --data '{"name": "x"}' -H "Content-Type: application/json"
        """,
    )

    # Common options
    parser.add_argument("--app-url", help="App to authenticate against (default: $AEC_APP_URL)")
    parser.add_argument("--account", help="Account to authenticate as (default: $AEC_ACCOUNT)")
    parser.add_argument("--token", help="Pre-obtained identity token; never prompts (default: $AEC_AUTH_TOKEN)")
    parser.add_argument(
        "--background", action="store_true", help="Run the request on a background worker and print progress"
    )
    parser.add_argument(
        "-H", "--header", action="append", dest="headers", metavar="'NAME: VALUE'", help="Extra header (repeatable)"
    )

    sub = parser.add_subparsers(dest="method", required=True)
    get_p = sub.add_parser("get", help="HTTP GET")
    get_p.add_argument("uri")
    post_p = sub.add_parser("post", help="HTTP POST")
    post_p.add_argument("uri")
    body_group = post_p.add_mutually_exclusive_group(required=True)
    body_group.add_argument("--data", help="Request body as text (UTF-8)")
    body_group.add_argument("--data-file", help="Path to a file whose bytes are the request body")

    args = parser.parse_args(argv)

    try:
        headers = parse_headers(args.headers)
    except ValueError as e:
        parser.error(str(e))

    method = args.method.upper()
    try:
        client = build_client(args)
        body = read_body(args) if method == "POST" else None
    except (ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    if args.background:
        return run_background(client, method, args.uri, headers, body)
    return run_sync(client, method, args.uri, headers, body)


if __name__ == "__main__":
    sys.exit(main())
