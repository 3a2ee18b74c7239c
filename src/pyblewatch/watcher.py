"""Advertisement watcher: reconciles advertisements into the device roster."""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pyblewatch._redact import redact_address
from pyblewatch.config import WatcherConfig
from pyblewatch.events import EventKind, WatcherEvent
from pyblewatch.exceptions import BleWatchConfigError
from pyblewatch.gatt import GattServiceIds
from pyblewatch.models.advertisement import Advertisement
from pyblewatch.models.device import Device, DeviceInfo
from pyblewatch.notifier import EventCallback, Notifier
from pyblewatch.roster.policy import ChangeKind
from pyblewatch.roster.store import Roster
from pyblewatch.sources.base import AdvertisementSource, DeviceResolver
from pyblewatch.sweeper import TimeoutSweeper

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class WatcherState(StrEnum):
    STOPPED = "stopped"
    STARTING = "starting"
    LISTENING = "listening"


class AdvertisementWatcher:
    """Maintain a live roster of nearby BLE devices.

    Usage::

        async with AdvertisementWatcher(GattServiceIds.default(), source=source, resolver=resolver) as watcher:
            watcher.subscribe(print)
            await asyncio.sleep(60)
            print(watcher.discovered_devices)

    Every advertisement is processed as its own task.  The resolver call
    is the only await in that task; roster writes and classification
    happen synchronously afterwards.  When two resolutions for the same
    device finish out of order the one that finishes last wins.
    """

    def __init__(
        self,
        gatt_service_ids: GattServiceIds | None,
        *,
        source: AdvertisementSource | None,
        resolver: DeviceResolver | None,
        config: WatcherConfig | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if gatt_service_ids is None:
            raise BleWatchConfigError("gatt_service_ids is required")
        if source is None:
            raise BleWatchConfigError("an advertisement source is required")
        if resolver is None:
            raise BleWatchConfigError("a device resolver is required")

        self._gatt_service_ids = gatt_service_ids
        self._source = source
        self._resolver = resolver
        self._config = config or WatcherConfig()
        self._clock = clock

        self._roster = Roster()
        self._notifier = Notifier()
        self._sweeper = TimeoutSweeper(
            self._roster,
            self._notifier,
            heartbeat_timeout=self._config.heartbeat_timeout,
            clock=clock,
        )

        # Guards the listening state together with the commit of a resolved
        # device, so stop() can never land between the check and the write.
        self._state_lock = threading.Lock()
        self._state = WatcherState.STOPPED
        self._loop: asyncio.AbstractEventLoop | None = None
        self._tasks: set[asyncio.Task[None]] = set()
        self._start_done: asyncio.Event | None = None
        self._abort_start = False

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> AdvertisementWatcher:
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.stop()
        await self.wait_idle()

    # ------------------------------------------------------------------
    # Public properties
    # ------------------------------------------------------------------

    @property
    def gatt_service_ids(self) -> GattServiceIds:
        return self._gatt_service_ids

    @property
    def config(self) -> WatcherConfig:
        return self._config

    @property
    def state(self) -> WatcherState:
        return self._state

    @property
    def listening(self) -> bool:
        """Whether the watcher is listening for advertisements."""
        return self._state is WatcherState.LISTENING

    @property
    def heartbeat_timeout(self) -> float:
        """Seconds a device may stay silent before it is dropped.

        Changing the value applies from the next sweep onwards.
        """
        return self._sweeper.heartbeat_timeout

    @heartbeat_timeout.setter
    def heartbeat_timeout(self, value: float) -> None:
        self._sweeper.heartbeat_timeout = value

    @property
    def discovered_devices(self) -> tuple[Device, ...]:
        """Currently visible devices, ordered by device id.

        Stale devices are evicted (and announced) before the snapshot is
        taken.
        """
        return self._roster.snapshot()

    @property
    def notifier(self) -> Notifier:
        return self._notifier

    @property
    def pending(self) -> int:
        """Number of advertisements still being resolved."""
        return len(self._tasks)

    def get_device(self, device_id: str) -> Device | None:
        return self._roster.get(device_id)

    def subscribe(
        self,
        callback: EventCallback,
        *,
        kinds: Iterable[EventKind] | None = None,
    ) -> Callable[[], None]:
        """Shortcut for :meth:`Notifier.subscribe`."""
        return self._notifier.subscribe(callback, kinds=kinds)

    # ------------------------------------------------------------------
    # Listening state
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start listening.  Does nothing if already listening or starting."""
        with self._state_lock:
            if self._state is not WatcherState.STOPPED:
                return
            self._state = WatcherState.STARTING
            self._abort_start = False
            self._loop = asyncio.get_running_loop()
            started = self._start_done = asyncio.Event()

        try:
            try:
                await self._source.start(self.submit)
            except BaseException:
                with self._state_lock:
                    self._state = WatcherState.STOPPED
                raise

            with self._state_lock:
                aborted = self._abort_start
                if not aborted:
                    self._state = WatcherState.LISTENING
            if aborted:
                # stop() arrived while the source was starting.
                _logger.debug("Start aborted by stop(), stopping source")
                try:
                    await self._source.stop()
                finally:
                    with self._state_lock:
                        self._state = WatcherState.STOPPED
                return
        finally:
            started.set()

        if self._config.sweep_interval > 0:
            self._sweeper.start(self._config.sweep_interval)
        _logger.info("Started listening for advertisements")
        self._notifier.emit(WatcherEvent(kind=EventKind.STARTED_LISTENING))

    async def stop(self) -> None:
        """Stop listening and forget every device.  Does nothing if stopped.

        Resolutions already in flight are left to finish; their results
        are discarded.  A stop issued while :meth:`start` is still waiting
        on the source aborts the start and returns once the source has
        been stopped again.
        """
        with self._state_lock:
            if self._state is WatcherState.STOPPED:
                return
            starting = self._start_done if self._state is WatcherState.STARTING else None
            if starting is not None:
                self._abort_start = True
            else:
                self._state = WatcherState.STOPPED
            cleared = self._roster.clear()

        if starting is not None:
            await starting.wait()
            return

        await self._sweeper.stop()
        try:
            await self._source.stop()
        finally:
            _logger.info("Stopped listening for advertisements cleared=%s", cleared)
            self._notifier.emit(WatcherEvent(kind=EventKind.STOPPED_LISTENING))

    # ------------------------------------------------------------------
    # Advertisement handling
    # ------------------------------------------------------------------

    def submit(self, advertisement: Advertisement) -> None:
        """Queue an advertisement for processing.

        Safe to call from any thread.  Each advertisement becomes its own
        task on the watcher's event loop.
        """
        loop = self._loop
        if loop is None or loop.is_closed() or not self.listening:
            _logger.debug("Ignoring advertisement while not listening address=%s", self._fmt(advertisement.address))
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            self._spawn(advertisement)
        else:
            loop.call_soon_threadsafe(self._spawn, advertisement)

    async def wait_idle(self) -> None:
        """Wait until every in-flight advertisement has been processed."""
        # Let callbacks queued via call_soon_threadsafe create their tasks.
        await asyncio.sleep(0)
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
            await asyncio.sleep(0)

    async def on_advertisement(self, advertisement: Advertisement) -> None:
        """Reconcile a single advertisement into the roster.

        Never raises: resolver failures and unexpected errors drop the
        advertisement and are logged at DEBUG.
        """
        try:
            await self._process(advertisement)
        except Exception:
            _logger.debug(
                "Advertisement processing failed address=%s",
                self._fmt(advertisement.address),
                exc_info=True,
            )

    def _spawn(self, advertisement: Advertisement) -> None:
        loop = self._loop
        if loop is None:
            return
        task = loop.create_task(self.on_advertisement(advertisement))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _process(self, advertisement: Advertisement) -> None:
        self._sweeper.sweep()

        info = await self._resolve(advertisement.address)
        if info is None:
            return

        device = Device.from_observation(advertisement, info)

        with self._state_lock:
            if self._state is not WatcherState.LISTENING:
                _logger.debug("Discarding resolution after stop address=%s", self._fmt(advertisement.address))
                return
            change = self._roster.upsert(device)

        _logger.debug(
            "Device %s address=%s name=%r rssi=%s",
            change,
            self._fmt(device.address),
            device.name,
            device.rssi,
        )
        self._announce(device, change)

    async def _resolve(self, address: int) -> DeviceInfo | None:
        timeout = self._config.resolve_timeout or None
        try:
            info = await asyncio.wait_for(self._resolver.resolve_device(address), timeout)
        except TimeoutError:
            _logger.debug("Device lookup timed out address=%s", self._fmt(address))
            return None
        except Exception:
            _logger.debug("Device lookup failed address=%s", self._fmt(address), exc_info=True)
            return None
        if info is None:
            _logger.debug("Device not found address=%s", self._fmt(address))
        return info

    def _announce(self, device: Device, change: ChangeKind) -> None:
        self._notifier.emit(WatcherEvent(kind=EventKind.DEVICE_DISCOVERED, device=device))
        if change is ChangeKind.NAME_CHANGED:
            self._notifier.emit(WatcherEvent(kind=EventKind.DEVICE_NAME_CHANGED, device=device))
        if change is ChangeKind.NEW:
            self._notifier.emit(WatcherEvent(kind=EventKind.NEW_DEVICE_DISCOVERED, device=device))

    def _fmt(self, address: int) -> str:
        return redact_address(address, enabled=self._config.redact_addresses)
