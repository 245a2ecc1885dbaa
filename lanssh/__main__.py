"""One-shot local SSH discovery.

Usage::

    python -m lanssh [--config PATH] [--duration SECONDS] [--json] [--debug]
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from lanssh.config import DiscoveryConfig, DiscoveryConfigError
from lanssh.discovery.manager import DiscoveryManager, PermissionState
from lanssh.models import DiscoveredHost


def _print(msg: str = "") -> None:
    print(msg, flush=True)


def _host_row(host: DiscoveredHost) -> str:
    sources = ", ".join(sorted(s.label for s in host.sources))
    latency = f"{host.latency_ms} ms" if host.latency_ms is not None else "-"
    return f"  {host.display_name:<28} {host.host}:{host.port:<6} {latency:>7}  [{sources}]"


def _host_dict(host: DiscoveredHost) -> dict:
    return {
        "id": host.identity_key,
        "name": host.display_name,
        "host": host.host,
        "port": host.port,
        "sources": sorted(s.value for s in host.sources),
        "latency_ms": host.latency_ms,
        "last_seen_at": host.last_seen_at.isoformat(),
    }


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="python -m lanssh",
        description="Discover SSH hosts on the local network",
    )
    parser.add_argument("--config", "-c", metavar="PATH", default=None, help="Path to config.json")
    parser.add_argument("--duration", type=float, default=None, help="Scan duration in seconds (overrides config)")
    parser.add_argument("--json", action="store_true", help="Print results as JSON")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    level = logging.DEBUG if args.debug else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    config = DiscoveryConfig.load(args.config) if args.config else DiscoveryConfig()
    config = DiscoveryConfig.from_env(config)
    if args.duration is not None:
        config.scan_duration = args.duration
    try:
        config.validate()
    except DiscoveryConfigError as e:
        parser.error(str(e))

    manager = DiscoveryManager(config=config)
    try:
        hosts = asyncio.run(manager.run())
    except KeyboardInterrupt:
        _print("\nScan cancelled.")
        sys.exit(1)

    if args.json:
        _print(json.dumps([_host_dict(h) for h in hosts], indent=2))
        return

    _print(manager.status_text)
    for host in hosts:
        _print(_host_row(host))
    if manager.permission_state is PermissionState.DENIED:
        _print("\nLocal network discovery was blocked; allow multicast/mDNS to see advertised hosts.")


if __name__ == "__main__":
    main()
