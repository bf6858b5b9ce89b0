from __future__ import annotations

import argparse
import logging
import sys
import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .config import build_resolver_config, build_server_config, load_config
from .errors import ResolverError
from .logging_config import init_logging, parse_level
from .resolver import MdnsResolver

logger = logging.getLogger("pigeonns.main")

EPILOG = """\
examples:
  pigeonns resolve abc123.local
  pigeonns resolve abc123 --type AAAA
  pigeonns monitor
  pigeonns serve
  pigeonns serve --port 8080 --host 0.0.0.0
"""


def build_parser() -> argparse.ArgumentParser:
    """Brief: Build the argparse parser for the pigeonns command.

    Inputs: none
    Outputs: argparse.ArgumentParser with resolve/monitor/serve subcommands.
    """

    parser = argparse.ArgumentParser(
        prog="pigeonns",
        description="PigeonNS - local mDNS resolver",
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", default=None, help="Path to optional YAML config")
    parser.add_argument(
        "--log-level",
        default=None,
        help="debug, info, warn, error or crit (default: warn, info for serve)",
    )

    # Options shared by every subcommand that builds a resolver.
    resolver_opts = argparse.ArgumentParser(add_help=False)
    resolver_opts.add_argument(
        "--timeout", type=int, default=None, help="Query timeout in milliseconds (default: 5000)"
    )
    resolver_opts.add_argument(
        "--ttl", type=int, default=None, help="Default cache TTL in seconds (default: 120)"
    )

    sub = parser.add_subparsers(dest="command", metavar="<command>")

    p_resolve = sub.add_parser(
        "resolve", parents=[resolver_opts], help="Resolve a .local hostname"
    )
    p_resolve.add_argument("hostname", help="Hostname, with or without .local")
    p_resolve.add_argument(
        "--type",
        dest="rtype",
        default="A",
        type=str.upper,
        choices=["A", "AAAA"],
        help="Record type (default: A)",
    )

    sub.add_parser(
        "monitor", parents=[resolver_opts], help="Print every mDNS address answer seen"
    )

    p_serve = sub.add_parser(
        "serve", parents=[resolver_opts], help="Start the HTTP API server for browsers"
    )
    p_serve.add_argument("--port", type=int, default=None, help="Server port (default: 5380)")
    p_serve.add_argument("--host", default=None, help="Server host (default: localhost)")
    return parser


def _make_resolver(args: argparse.Namespace, cfg: Dict[str, Any]) -> MdnsResolver:
    config = build_resolver_config(cfg, timeout_ms=args.timeout, ttl=args.ttl)
    return MdnsResolver(config)


def format_resolved(payload: Dict[str, Any], now: Optional[datetime] = None) -> str:
    """Brief: One monitor line for a `resolved` event.

    Example:
      >>> when = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
      >>> format_resolved({"name": "a.local", "type": "A", "address": "192.0.2.1", "ttl": 120}, when)
      '[2026-01-02T03:04:05Z] A a.local -> 192.0.2.1 (TTL: 120s)'
    """

    when = (now or datetime.now(timezone.utc)).strftime("%Y-%m-%dT%H:%M:%SZ")
    return (
        f"[{when}] {payload['type']} {payload['name']} -> "
        f"{payload['address']} (TTL: {payload['ttl']}s)"
    )


def cmd_resolve(args: argparse.Namespace, cfg: Dict[str, Any]) -> int:
    resolver = _make_resolver(args, cfg)
    try:
        resolver.start()
        logger.info("Querying %s (%s)", args.hostname, args.rtype)
        address = resolver.resolve(args.hostname, args.rtype)
    except ResolverError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    finally:
        resolver.stop()
    print(f"Resolved: {resolver.normalize(args.hostname)} -> {address}")
    return 0


def wait_for_interrupt(stop: threading.Event) -> None:
    """Block until stop is set or Ctrl+C is pressed."""
    try:
        while not stop.wait(0.5):
            pass
    except KeyboardInterrupt:
        pass


def cmd_monitor(
    args: argparse.Namespace,
    cfg: Dict[str, Any],
    stop: Optional[threading.Event] = None,
) -> int:
    resolver = _make_resolver(args, cfg)
    resolver.on("resolved", lambda payload: print(format_resolved(payload), flush=True))
    resolver.on("error", lambda exc: print(f"Error: {exc}", file=sys.stderr))

    try:
        resolver.start()
    except ResolverError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print("Listening for mDNS responses on the local network...")
    print("Press Ctrl+C to stop\n", flush=True)
    try:
        wait_for_interrupt(stop or threading.Event())
    finally:
        resolver.stop()
    return 0


def cmd_serve(args: argparse.Namespace, cfg: Dict[str, Any]) -> int:
    from .webserver import serve

    resolver = _make_resolver(args, cfg)
    server_cfg = build_server_config(cfg, host=args.host, port=args.port)
    raw_level = args.log_level or (cfg.get("logging") or {}).get("level") or "info"
    level = logging.getLevelName(parse_level(raw_level)).lower()

    try:
        resolver.start()
    except ResolverError as exc:
        print(f"Error starting server: {exc}", file=sys.stderr)
        return 1
    try:
        serve(resolver, server_cfg, log_level=level)
    finally:
        resolver.stop()
    return 0


def main(argv: List[str] | None = None) -> int:
    """
    Main entry point for the pigeonns command.

    Args:
        argv: Command-line arguments (defaults to sys.argv[1:]).

    Returns:
        An exit code: 0 on success, 1 on any resolution or configuration error.

    Example use:
        CLI:
            pigeonns resolve abc123.local --timeout 2000

        Programmatic:
        >>> main(["resolve", "abc123"])  # doctest: +SKIP
        0
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    try:
        cfg = load_config(args.config)
        log_cfg = dict(cfg.get("logging") or {})
        if args.log_level:
            log_cfg["level"] = args.log_level
        log_cfg.setdefault("level", "info" if args.command == "serve" else "warn")
        init_logging(log_cfg)

        if args.command == "resolve":
            return cmd_resolve(args, cfg)
        if args.command == "monitor":
            return cmd_monitor(args, cfg)
        return cmd_serve(args, cfg)
    except (OSError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
