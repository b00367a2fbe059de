"""Command line entry point for serving and inspecting a configured router."""

import argparse
import json
import logging
import sys
from typing import Any

from aiohttp import web

from switchyard.core.app import create_app
from switchyard.core.config import load_config
from switchyard.core.exceptions import SwitchyardError
from switchyard.core.router import Router


def setup_logging(log_level: str = "INFO") -> None:
    """Setup basic logging configuration.

    Args:
        log_level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


def parse_pairs(pairs: list[str]) -> dict[str, str]:
    """Parse `key=value` arguments.

    Raises:
        ValueError: If an argument has no `=`
    """
    values: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"Expected key=value, got: {pair}")
        values[key] = value
    return values


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="switchyard",
        description="Serve, inspect, match and generate URLs for configured routes.",
    )
    parser.add_argument("--config", default=None, help="Path to the router YAML configuration")
    subparsers = parser.add_subparsers(dest="command")

    serve_parser = subparsers.add_parser("serve", help="Serve the routed aiohttp application")
    serve_parser.add_argument("--host", default="0.0.0.0", help="Bind address")
    serve_parser.add_argument("--port", type=int, default=8080, help="Bind port")

    subparsers.add_parser("routes", help="List registered routes")

    match_parser = subparsers.add_parser("match", help="Match a request")
    match_parser.add_argument("method", help="HTTP method")
    match_parser.add_argument("path", help="Request path")

    generate_parser = subparsers.add_parser("generate", help="Generate the URL of a route")
    generate_parser.add_argument("name", help="Route name")
    generate_parser.add_argument("attributes", nargs="*", help="Attribute values as key=value")
    generate_parser.add_argument(
        "--query",
        action="append",
        default=[],
        help="Query parameter as key=value (repeatable)",
    )

    return parser


def serve(args: argparse.Namespace) -> int:
    """Run the routed application until interrupted."""
    config = load_config(args.config)
    app = create_app(config)
    web.run_app(app, host=args.host, port=args.port)
    return 0


def run(args: argparse.Namespace) -> dict[str, Any]:
    """Execute a parsed command and return its JSON payload."""
    config = load_config(args.config)
    setup_logging(config.logging.level)
    router = Router.from_config(config)

    if args.command == "routes":
        return {
            "routes": [
                {
                    "name": route.name,
                    "path": route.path,
                    "methods": route.sorted_methods() or None,
                }
                for route in router.routes.values()
            ]
        }

    if args.command == "match":
        result = router.match(args.path, args.method)
        return {
            "status": result.match.status.value,
            "route": result.matched_route_name,
            "method": result.match.method,
            "attributes": result.attributes,
            "allowed_methods": list(result.allowed_methods),
        }

    uri = router.generate_uri(
        args.name, parse_pairs(args.attributes), parse_pairs(args.query)
    )
    return {"uri": uri}


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    if args.command == "serve":
        return serve(args)

    try:
        payload = run(args)
    except (SwitchyardError, ValueError) as e:
        print(json.dumps({"error": type(e).__name__, "message": str(e)}), file=sys.stderr)
        return 1

    print(json.dumps(payload, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
