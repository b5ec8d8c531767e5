#!/usr/bin/env python3
"""Passive monitor for a Z21 command station.

Connects, subscribes to the chosen broadcast categories and prints every
notification until Ctrl+C (or ``--duration`` seconds).

Usage
-----
::

    export Z21_HOST="192.168.0.111"
    python scripts/z21_monitor.py --loco 3 --loco 24 --railcom

Options::

    --host HOST          Command station address (default: Z21_HOST)
    --local-port PORT    Local UDP port (default: same as the command station)
    --loco ADDR          Request loco info for ADDR after connecting (repeatable)
    --railcom            Subscribe to RailCom data
    --rbus               Subscribe to R-Bus feedback
    --no-system-state    Do not subscribe to system state broadcasts
    --no-probe           Skip the ICMP reachability probe
    --duration SECS      Maximum runtime (0 = run until Ctrl+C)
    --verbose / -v       Enable debug logging
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import time
from pathlib import Path
from typing import Any

# Allow running from the repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pyz21 import Z21Client, Z21Config, Z21Error, Z21Event  # noqa: E402


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Print Z21 notifications.",
    )
    parser.add_argument(
        "--host",
        default=None,
        help="Command station address (default: Z21_HOST or 192.168.0.111).",
    )
    parser.add_argument(
        "--local-port",
        type=int,
        default=None,
        help="Local UDP port to bind (default: same as the command station).",
    )
    parser.add_argument(
        "--loco",
        type=int,
        action="append",
        default=[],
        help="Request loco info for this address after connecting (repeatable).",
    )
    parser.add_argument(
        "--railcom",
        action="store_true",
        help="Subscribe to RailCom data.",
    )
    parser.add_argument(
        "--rbus",
        action="store_true",
        help="Subscribe to R-Bus feedback.",
    )
    parser.add_argument(
        "--no-system-state",
        action="store_true",
        help="Do not subscribe to system state broadcasts.",
    )
    parser.add_argument(
        "--no-probe",
        action="store_true",
        help="Skip the ICMP reachability probe.",
    )
    parser.add_argument(
        "--duration",
        type=int,
        default=0,
        help="Maximum runtime in seconds (0 = run until Ctrl+C).",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logs.",
    )
    return parser.parse_args()


def _printer(event: Z21Event) -> Any:
    def _print(payload: Any) -> None:
        stamp = time.strftime("%H:%M:%S")
        print(f"[{stamp}] {event.value:<16} {payload!r}")

    return _print


async def _run(args: argparse.Namespace) -> int:
    overrides: dict[str, Any] = {}
    if args.host:
        overrides["host"] = args.host
    if args.local_port is not None:
        overrides["local_port"] = args.local_port
    if args.no_probe:
        overrides["probe_enabled"] = False
    config = Z21Config.from_env(**overrides)

    client = Z21Client(config)
    events = [
        Z21Event.CONNECTION_STATE,
        Z21Event.HARDWARE_INFO,
        Z21Event.LOCO_INFO,
        Z21Event.LOCO_MODE,
        Z21Event.TURNOUT_INFO,
        Z21Event.TRACK_POWER,
        Z21Event.EMERGENCY_STOP,
    ]
    if not args.no_system_state:
        events.append(Z21Event.SYSTEM_STATE)
    if args.railcom:
        events.append(Z21Event.RAILCOM_DATA)
    if args.rbus:
        events.append(Z21Event.RBUS_DATA)
    for event in events:
        client.add_listener(event, _printer(event))

    if not await client.connect():
        print(f"[monitor] Could not connect to {config.host}:{config.port}", file=sys.stderr)
        return 2

    try:
        await client.get_serial_number()
        for address in args.loco:
            await client.request_loco_info(address)
        deadline = time.monotonic() + args.duration if args.duration > 0 else None
        while client.is_connected:
            if deadline is not None and time.monotonic() >= deadline:
                break
            await asyncio.sleep(0.5)
        if not client.is_connected:
            print(f"[monitor] Connection ended: {client.state}", file=sys.stderr)
            return 1
    finally:
        await client.disconnect()
    return 0


def _main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        return asyncio.run(_run(args))
    except KeyboardInterrupt:
        return 0
    except (Z21Error, ValueError) as exc:
        print(f"[monitor] {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(_main())
