#!/usr/bin/env python3
"""Print roster changes for nearby BLE devices.

Runs an :class:`~pyblewatch.AdvertisementWatcher` on the local adapter and
prints every notification as it arrives.  Every ``--dump-every`` seconds
the full roster is printed as well.

Configuration comes from ``BLEWATCH_*`` environment variables; command
line options override them.
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
import signal
import sys
from pathlib import Path

_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pyblewatch import WatcherConfig, WatcherEvent  # noqa: E402
from pyblewatch.sources.bleak_scanner import create_bleak_watcher  # noqa: E402


def _print_event(event: WatcherEvent, *, json_mode: bool) -> None:
    if json_mode:
        print(json.dumps(event.model_dump(mode="json"), ensure_ascii=False), flush=True)
        return
    stamp = event.emitted_at.strftime("%H:%M:%S")
    if event.device is None:
        print(f"{stamp} {event.kind}", flush=True)
    else:
        print(f"{stamp} {event.kind:<22} {event.device}", flush=True)


async def run() -> int:
    parser = argparse.ArgumentParser(description="Watch nearby Bluetooth LE devices")
    parser.add_argument("--heartbeat", type=float, help="Seconds of silence before a device is dropped")
    parser.add_argument("--passive", action="store_true", help="Passive scanning (no scan requests)")
    parser.add_argument("--duration", type=float, default=0.0, help="Stop after N seconds (0 = until Ctrl+C)")
    parser.add_argument("--dump-every", type=float, default=0.0, help="Print the full roster every N seconds")
    parser.add_argument("--json", action="store_true", help="Emit one JSON object per event")
    parser.add_argument("--redact", action="store_true", help="Mask device addresses in log output")
    parser.add_argument("--verbose", "-v", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    cfg = WatcherConfig.from_env()
    updates: dict[str, object] = {}
    if args.heartbeat is not None:
        updates["heartbeat_timeout"] = args.heartbeat
    if args.passive:
        updates["scanning_mode"] = "passive"
    if args.redact:
        updates["redact_addresses"] = True
    if updates:
        cfg = dataclasses.replace(cfg, **updates)  # type: ignore[arg-type]

    watcher = create_bleak_watcher(cfg)
    watcher.subscribe(lambda event: _print_event(event, json_mode=args.json))

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            pass
    if args.duration > 0:
        loop.call_later(args.duration, stop.set)

    async with watcher:
        while not stop.is_set():
            timeout = args.dump_every if args.dump_every > 0 else None
            try:
                await asyncio.wait_for(stop.wait(), timeout)
            except TimeoutError:
                devices = watcher.discovered_devices
                print(f"-- {len(devices)} device(s) --", flush=True)
                for device in devices:
                    print(f"   {device}", flush=True)
    return 0


if __name__ == "__main__":
    raise SystemExit(asyncio.run(run()))
