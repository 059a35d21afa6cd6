"""CLI entry point for headcount."""

import argparse
import json
import logging
import signal
import sys
import threading
import urllib.error

from .config import (
    ConfigError,
    HeadcountConfig,
    config_to_yaml,
    load_config,
    merge_cli_args,
    validate_config,
)
from .registry import SessionRegistry
from .server import OnlineClient, start_server

logger = logging.getLogger("headcount")


def _add_serve_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config", type=str, help="Path to YAML config file")
    parser.add_argument("--host", type=str, help="Address to bind (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, help="Port to listen on (default: 8080)")
    parser.add_argument(
        "--sweep-interval", type=float, dest="sweep_interval",
        help="Seconds between expiry sweeps (default: 30)",
    )
    parser.add_argument(
        "--session-ttl", type=float, dest="session_ttl",
        help="Seconds without a heartbeat before a session expires (default: 60)",
    )
    parser.add_argument(
        "--cors-origin", type=str, dest="cors_origin",
        help="Access-Control-Allow-Origin value (default: *)",
    )
    parser.add_argument(
        "--log-level", type=str, dest="log_level",
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--dry-run", action="store_true", dest="dry_run",
        help="Print the effective configuration as YAML and exit",
    )


def _build_config(args) -> HeadcountConfig:
    """Load config from file (if given), overlay CLI args, and validate."""
    if args.config:
        config = load_config(args.config)
    else:
        config = HeadcountConfig()
    merge_cli_args(config, args)
    return validate_config(config)


def cmd_serve(args) -> None:
    """Run the online-count server until interrupted."""
    try:
        config = _build_config(args)
    except (ConfigError, OSError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)

    if args.dry_run:
        print(config_to_yaml(config), end="")
        return

    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    registry = SessionRegistry(
        session_ttl=config.session_ttl,
        sweep_interval=config.sweep_interval,
    )
    try:
        server = start_server(
            registry, host=config.host, port=config.port, cors_origin=config.cors_origin,
        )
    except OSError as exc:
        print(f"Error: cannot listen on {config.host}:{config.port}: {exc}", file=sys.stderr)
        sys.exit(1)
    registry.start()

    stop = threading.Event()

    def _on_signal(signum, frame):
        logger.info("received %s, shutting down", signal.Signals(signum).name)
        stop.set()

    signal.signal(signal.SIGINT, _on_signal)
    signal.signal(signal.SIGTERM, _on_signal)

    try:
        stop.wait()
    finally:
        server.shutdown()
        server.server_close()
        registry.stop()
        logger.info("stopped")


# ---------------------------------------------------------------------------
# client subcommands
# ---------------------------------------------------------------------------

def _client(args) -> OnlineClient:
    return OnlineClient(host=args.server_host, port=args.server_port)


def _run_query(fn):
    try:
        return fn()
    except (urllib.error.URLError, OSError, ValueError, KeyError) as exc:
        print(f"Error: request failed: {exc}", file=sys.stderr)
        sys.exit(1)


def cmd_count(args) -> None:
    count = _run_query(_client(args).count)
    if args.format == "json":
        print(json.dumps({"online_count": count}))
    else:
        print(count)


def cmd_users(args) -> None:
    users = _run_query(_client(args).users)
    if args.format == "json":
        print(json.dumps(users, indent=2))
    else:
        print("\n".join(users) if users else "(no users online)")


def cmd_health(args) -> None:
    health = _run_query(_client(args).health)
    if args.format == "json":
        print(json.dumps(health, indent=2))
    else:
        print(
            f"{health['status']}  online={health['online_count']}"
            f"  sessions={health['sessions']}"
        )


def _add_client_args(parser: argparse.ArgumentParser) -> None:
    """Add --server-host/--server-port/--format to a client sub-parser."""
    parser.add_argument(
        "--server-host", type=str, default="localhost", dest="server_host",
        help="headcount server host (default: localhost)",
    )
    parser.add_argument(
        "--server-port", type=int, default=8080, dest="server_port",
        help="headcount server port (default: 8080)",
    )
    parser.add_argument(
        "--format", choices=["text", "json"], default="text",
        help="Output format (default: text)",
    )


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="headcount",
        description="headcount: online user tracking over heartbeated sessions",
    )
    subparsers = parser.add_subparsers(dest="command")

    # serve
    serve_parser = subparsers.add_parser("serve", help="Run the HTTP server")
    _add_serve_args(serve_parser)
    serve_parser.set_defaults(func=cmd_serve)

    # count
    count_parser = subparsers.add_parser("count", help="Print the online user count")
    _add_client_args(count_parser)
    count_parser.set_defaults(func=cmd_count)

    # users
    users_parser = subparsers.add_parser("users", help="List online users")
    _add_client_args(users_parser)
    users_parser.set_defaults(func=cmd_users)

    # health
    health_parser = subparsers.add_parser("health", help="Query the health endpoint")
    _add_client_args(health_parser)
    health_parser.set_defaults(func=cmd_health)

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    args.func(args)


if __name__ == "__main__":
    main()
