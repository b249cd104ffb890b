"""Command-line interface for tmuxgate.

Provides the main entry point for running the HTTP server, checking
addresses against the configured access policy, and discovering the
local networks worth adding to the allowlist.
"""

from __future__ import annotations

import argparse
import asyncio
import ipaddress
import logging
import sys
from pathlib import Path

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="tmuxgate",
        description="tmux sessions over HTTP behind an IP allowlist",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to YAML configuration file (default: config/tmuxgate.yaml)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP server")
    serve_parser.add_argument("--host", type=str, default=None, help="Bind address")
    serve_parser.add_argument("--port", type=int, default=None, help="Listen port")

    check_parser = subparsers.add_parser(
        "check-ip", help="Show whether addresses pass the configured access policy",
    )
    check_parser.add_argument("addresses", nargs="+", metavar="ADDRESS")

    subparsers.add_parser(
        "suggest-ranges",
        help="List local IPv4 networks to add to access.allowed_ranges (run while on VPN)",
    )

    return parser.parse_args(argv)


def _check_ips(settings, addresses: list[str]) -> int:
    """Classify each address and print the verdict. Returns the exit status."""
    from tmuxgate.access.classifier import build_policy, classify, describe_rules
    from tmuxgate.domain.models import Decision

    policy = build_policy(settings.access)
    if not policy.enabled:
        print("Access control is disabled: every address is allowed.")
    else:
        logger.debug("Rules: %s", ", ".join(describe_rules(policy.rules)))

    status = 0
    for address in addresses:
        decision = classify(address, policy)
        print(f"{address} {decision.value}")
        if decision is Decision.DENIED:
            status = 1
    return status


def parse_interfaces(output: str) -> list[tuple[str, ipaddress.IPv4Interface]]:
    """Parse ``ip -o -4 addr show`` output into (interface, address) pairs.

    Loopback addresses are skipped.
    """
    found = []
    for line in output.splitlines():
        parts = line.split()
        if "inet" not in parts or len(parts) < 2:
            continue
        idx = parts.index("inet")
        if idx + 1 >= len(parts):
            continue
        try:
            iface = ipaddress.IPv4Interface(parts[idx + 1])
        except ValueError:
            continue
        if iface.is_loopback:
            continue
        found.append((parts[1].rstrip(":"), iface))
    return found


async def _suggest_ranges() -> int:
    """Print the network of every non-loopback IPv4 interface."""
    from tmuxgate.tmux.runner import CommandError, CommandRunner

    try:
        result = await CommandRunner().run("ip -o -4 addr show")
    except CommandError as e:
        print(f"Could not list network interfaces: {e.message} {e.stderr.strip()}", file=sys.stderr)
        return 1

    interfaces = parse_interfaces(result.stdout)
    if not interfaces:
        print("No non-loopback IPv4 interfaces found.")
        return 0

    print("Local IPv4 interfaces:")
    for name, iface in interfaces:
        print(f"  {name:<12} {iface.with_prefixlen}")

    print("\nAdd these ranges to access.allowed_ranges:")
    for _, iface in interfaces:
        print(f"  - {iface.network.with_prefixlen}")

    print("\nRun this again while connected to the VPN and keep only the ranges that appear then.")
    return 0


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the tmuxgate CLI."""
    args = parse_args(argv)

    if args.command is None:
        parse_args(["--help"])
        return

    from tmuxgate.config.settings import load_settings
    from tmuxgate.utils.logging import setup_logging

    settings = load_settings(args.config)

    if args.verbose:
        settings.logging.level = "DEBUG"

    setup_logging(settings.logging)

    if args.command == "serve":
        from tmuxgate.server.app import main as serve

        if args.host:
            settings.server.host = args.host
        if args.port:
            settings.server.port = args.port
        logger.info("Starting server on %s:%d", settings.server.host, settings.server.port)
        serve(settings)

    elif args.command == "check-ip":
        sys.exit(_check_ips(settings, args.addresses))

    elif args.command == "suggest-ranges":
        sys.exit(asyncio.run(_suggest_ranges()))


if __name__ == "__main__":
    main()
