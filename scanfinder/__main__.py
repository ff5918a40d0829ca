"""
Discover network scanners and print them.

Starts mDNS discovery, waits for the initial scan (bounded by --timeout),
prints every scanner found and exits.

Usage:
    python -m scanfinder                 # wait up to ready_timeout_seconds
    python -m scanfinder --timeout 10
    python -m scanfinder --json --debug
"""

# Load .env file FIRST, so settings pick it up
from dotenv import load_dotenv
load_dotenv()

import argparse
import asyncio
import json
import logging
import sys

from .config import settings
from .discovery import DiscoveryService, DiscoveryStartupError

logger = logging.getLogger("scanfinder.main")


async def run(timeout: float, as_json: bool) -> int:
    service = DiscoveryService()

    try:
        await service.start()
    except DiscoveryStartupError as e:
        logger.error("%s", e)
        return 1

    try:
        if not await service.wait_ready(timeout):
            logger.warning("Initial scan did not complete within %.1fs", timeout)
        devices = service.devices()
    finally:
        await service.stop()

    if as_json:
        print(json.dumps([d.to_dict() for d in devices], indent=2))
        return 0

    if not devices:
        print("No scanners found")
        return 0

    for device in devices:
        print(f"{device.name}")
        print(f"  model: {device.model}")
        print(f"  uuid:  {device.uuid}")
        for endpoint in device.endpoints:
            print(f"  {endpoint.proto.value}: {endpoint.uri}")

    return 0


def main() -> None:
    parser = argparse.ArgumentParser(prog="scanfinder", description="Discover network scanners via mDNS")
    parser.add_argument(
        "--timeout",
        type=float,
        default=settings.discovery.ready_timeout_seconds,
        help="Max seconds to wait for the initial scan",
    )
    parser.add_argument("--json", action="store_true", help="Print devices as JSON")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    level = logging.DEBUG if args.debug or settings.debug else getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        sys.exit(asyncio.run(run(args.timeout, args.json)))
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    main()
