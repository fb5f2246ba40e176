"""CLI entrypoint for calgroups."""

from __future__ import annotations

import argparse
import asyncio
import json
from pathlib import Path
from typing import Any

from calgroups.agent import DEFAULT_BIND_HOST, DEFAULT_PORT, request, serve
from calgroups.config import load_config
from calgroups.errors import ChannelUnavailable
from calgroups.gateway import ACTIONS
from calgroups.storage import tail_lines


def main() -> None:
    parser = _build_parser()
    args = parser.parse_args()

    if args.command == "serve":
        serve_command(args)
        return
    if args.command == "call":
        call_command(args)
        return
    if args.command == "logs":
        logs_command(args.tail)
        return
    parser.print_help()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="calgroups")
    subparsers = parser.add_subparsers(dest="command")

    serve_parser = subparsers.add_parser("serve", help="Attach to a calendar tab and serve the engine channel")
    serve_parser.add_argument("--cdp-url", default="http://127.0.0.1:9222")
    serve_parser.add_argument("--groups", type=Path, default=None, help="JSON file with group definitions")
    serve_parser.add_argument("--host", default=DEFAULT_BIND_HOST)
    serve_parser.add_argument("--port", type=int, default=DEFAULT_PORT)
    serve_parser.add_argument("--settle-ms", type=int, default=None)
    serve_parser.add_argument("--reveal-timeout", type=float, default=None)

    call_parser = subparsers.add_parser("call", help="Send one request to a running engine")
    call_parser.add_argument("action", choices=ACTIONS)
    call_parser.add_argument("--group-id", default=None)
    call_parser.add_argument("--select", action="append", default=None, help="Entity id; repeatable")
    call_parser.add_argument("--host", default=DEFAULT_BIND_HOST)
    call_parser.add_argument("--port", type=int, default=DEFAULT_PORT)
    call_parser.add_argument("--timeout", type=float, default=60.0)

    logs_parser = subparsers.add_parser("logs", help="Tail the engine journal log")
    logs_parser.add_argument("--tail", type=int, default=200)
    return parser


def serve_command(args: argparse.Namespace) -> None:
    config = load_config().with_overrides(
        settle_ms=args.settle_ms,
        reveal_timeout_seconds=args.reveal_timeout,
    )
    try:
        asyncio.run(
            serve(
                args.cdp_url,
                config,
                groups_path=args.groups,
                bind_host=args.host,
                port=args.port,
            )
        )
    except ChannelUnavailable as exc:
        raise SystemExit(str(exc)) from exc
    except KeyboardInterrupt:
        pass


def build_message(args: argparse.Namespace) -> dict[str, Any]:
    message: dict[str, Any] = {"action": args.action}
    if args.group_id is not None:
        message["groupId"] = args.group_id
    if args.select:
        message["selection"] = list(args.select)
    return message


def call_command(args: argparse.Namespace) -> None:
    message = build_message(args)
    try:
        response = asyncio.run(
            request(message, host=args.host, port=args.port, timeout_seconds=args.timeout)
        )
    except ChannelUnavailable as exc:
        raise SystemExit(str(exc)) from exc
    print(json.dumps(response, indent=2, ensure_ascii=False))
    if "error" in response:
        raise SystemExit(1)


def logs_command(tail_count: int) -> None:
    log_path = load_config().log_path
    if not log_path:
        raise SystemExit("CALGROUPS_LOG_PATH is not set.")
    print("\n".join(tail_lines(Path(log_path), tail_count)))


if __name__ == "__main__":
    main()
