"""``bleak`` implementation of the advertisement source and resolver."""

from __future__ import annotations

import asyncio
import logging
import threading
from datetime import UTC, datetime
from typing import Any, Literal

from bleak import BleakScanner
from bleak.backends.device import BLEDevice
from bleak.backends.scanner import AdvertisementData
from bleak.exc import BleakError

from pyblewatch.config import WatcherConfig
from pyblewatch.exceptions import BleWatchResolutionError, BleWatchSourceError
from pyblewatch.gatt import GattServiceIds
from pyblewatch.models._base import format_address, parse_address
from pyblewatch.models.advertisement import Advertisement
from pyblewatch.models.device import DeviceInfo
from pyblewatch.sources.base import AdvertisementCallback
from pyblewatch.watcher import AdvertisementWatcher

_logger = logging.getLogger(__name__)


class BleakAdvertisementSource:
    """Advertisement source backed by :class:`bleak.BleakScanner`.

    The latest ``(BLEDevice, AdvertisementData)`` pair per address is kept
    so :class:`BleakDeviceResolver` can answer lookups without another
    scan.  Platforms that do not expose MAC addresses (macOS reports
    CoreBluetooth UUIDs) produce no advertisements.
    """

    def __init__(self, *, scanning_mode: Literal["active", "passive"] = "active") -> None:
        self._scanning_mode = scanning_mode
        self._scanner: BleakScanner | None = None
        self._callback: AdvertisementCallback | None = None
        self._seen: dict[int, tuple[BLEDevice, AdvertisementData]] = {}
        self._seen_lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._scanner is not None

    def last_seen(self, address: int) -> tuple[BLEDevice, AdvertisementData] | None:
        with self._seen_lock:
            return self._seen.get(address)

    async def start(self, callback: AdvertisementCallback) -> None:
        if self._scanner is not None:
            return
        self._callback = callback
        scanner = BleakScanner(detection_callback=self._on_detection, scanning_mode=self._scanning_mode)
        try:
            await scanner.start()
        except (BleakError, OSError) as exc:
            self._callback = None
            raise BleWatchSourceError(f"BLE scan failed to start: {exc}") from exc
        self._scanner = scanner
        _logger.debug("BLE scanner started mode=%s", self._scanning_mode)

    async def stop(self) -> None:
        scanner = self._scanner
        self._scanner = None
        self._callback = None
        if scanner is None:
            return
        try:
            await scanner.stop()
        except (BleakError, OSError) as exc:
            raise BleWatchSourceError(f"BLE scan failed to stop: {exc}") from exc
        finally:
            with self._seen_lock:
                self._seen.clear()
        _logger.debug("BLE scanner stopped")

    def _on_detection(self, device: BLEDevice, adv: AdvertisementData) -> None:
        callback = self._callback
        if callback is None:
            return
        try:
            address = parse_address(device.address)
        except ValueError:
            _logger.debug("Skipping advertisement without MAC address: %s", device.address)
            return
        with self._seen_lock:
            self._seen[address] = (device, adv)
        callback(
            Advertisement(
                address=address,
                timestamp=datetime.now(UTC),
                rssi=adv.rssi,
            )
        )


class BleakDeviceResolver:
    """Resolve addresses from the scanner cache, falling back to a lookup scan."""

    def __init__(self, source: BleakAdvertisementSource, *, lookup_timeout: float = 5.0) -> None:
        self._source = source
        self._lookup_timeout = lookup_timeout

    async def resolve_device(self, address: int) -> DeviceInfo | None:
        cached = self._source.last_seen(address)
        if cached is not None:
            device, adv = cached
            return _device_info(address, device, adv)

        try:
            device = await BleakScanner.find_device_by_address(
                format_address(address),
                timeout=self._lookup_timeout,
            )
        except (BleakError, OSError, asyncio.TimeoutError) as exc:
            raise BleWatchResolutionError(f"Lookup failed: {exc}", address=address) from exc
        if device is None:
            return None
        return _device_info(address, device, None)


def _device_info(address: int, device: BLEDevice, adv: AdvertisementData | None) -> DeviceInfo:
    """Build a :class:`DeviceInfo` from what bleak reports.

    No backend exposes pairability directly.  It is approximated from the
    BlueZ ``Device1`` properties as "not paired and not blocked"; other
    backends report neither, so devices there count as pairable.
    """
    name = (adv.local_name if adv is not None else None) or device.name
    details: dict[str, Any] = {}
    if adv is not None and isinstance(adv.platform_data, tuple) and len(adv.platform_data) > 1:
        # BlueZ hands back the D-Bus property dict as the second element.
        props = adv.platform_data[1]
        if isinstance(props, dict):
            details = props
    return DeviceInfo(
        address=address,
        name=name,
        connected=bool(details.get("Connected", False)),
        pairable=not bool(details.get("Paired", False)) and not bool(details.get("Blocked", False)),
        paired=bool(details.get("Paired", False)),
    )


def create_bleak_watcher(
    config: WatcherConfig | None = None,
    *,
    gatt_service_ids: GattServiceIds | None = None,
) -> AdvertisementWatcher:
    """Build an :class:`AdvertisementWatcher` wired to the local adapter."""
    config = config or WatcherConfig.from_env()
    source = BleakAdvertisementSource(scanning_mode="passive" if config.scanning_mode == "passive" else "active")
    return AdvertisementWatcher(
        gatt_service_ids if gatt_service_ids is not None else GattServiceIds.default(),
        source=source,
        resolver=BleakDeviceResolver(source),
        config=config,
    )
