from __future__ import annotations

import asyncio
import threading
from datetime import UTC, datetime, timedelta

import pytest

from pyblewatch.config import WatcherConfig
from pyblewatch.events import EventKind, WatcherEvent
from pyblewatch.exceptions import BleWatchConfigError, BleWatchResolutionError, BleWatchSourceError
from pyblewatch.gatt import GattServiceIds
from pyblewatch.models.advertisement import Advertisement
from pyblewatch.models.device import DeviceInfo
from pyblewatch.sources.base import AdvertisementCallback
from pyblewatch.watcher import AdvertisementWatcher, WatcherState

D1 = 0x0000000000D1
D2 = 0x0000000000D2


class _Clock:
    def __init__(self) -> None:
        self.now = datetime(2026, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class _FakeSource:
    def __init__(self, *, fail_start: bool = False, start_gate: asyncio.Event | None = None) -> None:
        self.callback: AdvertisementCallback | None = None
        self.starts = 0
        self.stops = 0
        self._fail_start = fail_start
        self._start_gate = start_gate

    async def start(self, callback: AdvertisementCallback) -> None:
        if self._start_gate is not None:
            await self._start_gate.wait()
        if self._fail_start:
            raise BleWatchSourceError("adapter unavailable")
        self.callback = callback
        self.starts += 1

    async def stop(self) -> None:
        self.callback = None
        self.stops += 1


class _FakeResolver:
    """Returns canned results; addresses with a gate block until it is set."""

    def __init__(self) -> None:
        self.results: dict[int, DeviceInfo | BaseException | None] = {}
        self.gates: dict[int, asyncio.Event] = {}
        self.calls: list[int] = []

    def set_name(self, address: int, name: str | None) -> None:
        self.results[address] = DeviceInfo(address=address, name=name)

    async def resolve_device(self, address: int) -> DeviceInfo | None:
        self.calls.append(address)
        gate = self.gates.get(address)
        if gate is not None:
            await gate.wait()
        result = self.results.get(address)
        if isinstance(result, BaseException):
            raise result
        return result


def _make(
    *,
    config: WatcherConfig | None = None,
    source: _FakeSource | None = None,
) -> tuple[AdvertisementWatcher, _FakeSource, _FakeResolver, _Clock, list[WatcherEvent]]:
    clock = _Clock()
    source = source or _FakeSource()
    resolver = _FakeResolver()
    watcher = AdvertisementWatcher(
        GattServiceIds.default(),
        source=source,
        resolver=resolver,
        config=config or WatcherConfig(sweep_interval=0, resolve_timeout=1.0),
        clock=clock,
    )
    events: list[WatcherEvent] = []
    watcher.subscribe(events.append)
    return watcher, source, resolver, clock, events


def _adv(address: int, clock: _Clock, rssi: int = -60) -> Advertisement:
    return Advertisement(address=address, timestamp=clock(), rssi=rssi)


def _kinds(events: list[WatcherEvent]) -> list[EventKind]:
    return [event.kind for event in events]


async def _settle() -> None:
    """Give spawned tasks enough loop iterations to reach their next await."""
    for _ in range(10):
        await asyncio.sleep(0)


# ------------------------------------------------------------------
# Construction
# ------------------------------------------------------------------


def test_missing_gatt_service_ids_fails_fast() -> None:
    with pytest.raises(BleWatchConfigError):
        AdvertisementWatcher(None, source=_FakeSource(), resolver=_FakeResolver())


def test_missing_collaborators_fail_fast() -> None:
    with pytest.raises(BleWatchConfigError):
        AdvertisementWatcher(GattServiceIds.default(), source=None, resolver=_FakeResolver())
    with pytest.raises(BleWatchConfigError):
        AdvertisementWatcher(GattServiceIds.default(), source=_FakeSource(), resolver=None)


def test_initial_state() -> None:
    watcher, _source, _resolver, _clock, events = _make()

    assert watcher.state == WatcherState.STOPPED
    assert watcher.listening is False
    assert watcher.discovered_devices == ()
    assert watcher.heartbeat_timeout == 30.0
    assert events == []


# ------------------------------------------------------------------
# Listening state machine
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_start_and_stop_are_idempotent() -> None:
    watcher, source, _resolver, _clock, events = _make()

    await watcher.start()
    await watcher.start()
    assert watcher.listening is True
    assert source.starts == 1
    assert source.callback is not None

    await watcher.stop()
    await watcher.stop()
    assert watcher.listening is False
    assert source.stops == 1

    assert _kinds(events) == [EventKind.STARTED_LISTENING, EventKind.STOPPED_LISTENING]


@pytest.mark.asyncio
async def test_stop_before_start_is_noop() -> None:
    watcher, source, _resolver, _clock, events = _make()

    await watcher.stop()

    assert source.stops == 0
    assert events == []


@pytest.mark.asyncio
async def test_source_start_failure_reverts_state() -> None:
    watcher, _source, _resolver, _clock, events = _make(source=_FakeSource(fail_start=True))

    with pytest.raises(BleWatchSourceError):
        await watcher.start()

    assert watcher.state == WatcherState.STOPPED
    assert events == []


@pytest.mark.asyncio
async def test_stop_clears_roster() -> None:
    watcher, _source, resolver, clock, _events = _make()
    resolver.set_name(D1, "Sensor-A")
    await watcher.start()
    await watcher.on_advertisement(_adv(D1, clock))
    assert len(watcher.discovered_devices) == 1

    await watcher.stop()

    assert watcher.discovered_devices == ()


@pytest.mark.asyncio
async def test_stop_while_source_starting_unregisters_source() -> None:
    gate = asyncio.Event()
    watcher, source, _resolver, _clock, events = _make(source=_FakeSource(start_gate=gate))

    start_task = asyncio.create_task(watcher.start())
    await _settle()
    assert watcher.state == WatcherState.STARTING
    assert watcher.listening is False

    await watcher.start()
    stop_task = asyncio.create_task(watcher.stop())
    await _settle()
    assert not stop_task.done()

    gate.set()
    await start_task
    await stop_task

    assert watcher.state == WatcherState.STOPPED
    assert source.callback is None
    assert (source.starts, source.stops) == (1, 1)
    assert events == []

    await watcher.start()
    assert watcher.listening is True
    assert _kinds(events) == [EventKind.STARTED_LISTENING]


@pytest.mark.asyncio
async def test_context_manager_starts_and_stops() -> None:
    watcher, source, _resolver, _clock, events = _make()

    async with watcher as running:
        assert running is watcher
        assert watcher.listening is True

    assert watcher.listening is False
    assert source.stops == 1
    assert _kinds(events) == [EventKind.STARTED_LISTENING, EventKind.STOPPED_LISTENING]


# ------------------------------------------------------------------
# Classification and notification order
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_first_advertisement_is_new() -> None:
    watcher, _source, resolver, clock, events = _make()
    resolver.set_name(D1, "Sensor-A")
    await watcher.start()
    events.clear()

    await watcher.on_advertisement(_adv(D1, clock))

    assert _kinds(events) == [EventKind.DEVICE_DISCOVERED, EventKind.NEW_DEVICE_DISCOVERED]
    assert events[0].device is not None
    assert events[0].device.name == "Sensor-A"
    assert [device.address for device in watcher.discovered_devices] == [D1]


@pytest.mark.asyncio
async def test_repeat_advertisement_with_same_name_only_discovered() -> None:
    watcher, _source, resolver, clock, events = _make()
    resolver.set_name(D1, "Sensor-A")
    await watcher.start()
    await watcher.on_advertisement(_adv(D1, clock))
    events.clear()

    clock.advance(1)
    await watcher.on_advertisement(_adv(D1, clock, rssi=-42))

    assert _kinds(events) == [EventKind.DEVICE_DISCOVERED]
    (device,) = watcher.discovered_devices
    assert device.rssi == -42
    assert device.last_seen == clock()


@pytest.mark.asyncio
async def test_name_appearing_is_not_a_name_change() -> None:
    watcher, _source, resolver, clock, events = _make()
    resolver.set_name(D1, "")
    await watcher.start()
    await watcher.on_advertisement(_adv(D1, clock))
    events.clear()

    resolver.set_name(D1, "Sensor-A")
    clock.advance(1)
    await watcher.on_advertisement(_adv(D1, clock))

    assert _kinds(events) == [EventKind.DEVICE_DISCOVERED]
    assert watcher.discovered_devices[0].name == "Sensor-A"


@pytest.mark.asyncio
async def test_rename_fires_name_changed_after_discovered() -> None:
    watcher, _source, resolver, clock, events = _make()
    resolver.set_name(D1, "Sensor-A")
    await watcher.start()
    await watcher.on_advertisement(_adv(D1, clock))
    events.clear()

    resolver.set_name(D1, "Sensor-B")
    clock.advance(1)
    await watcher.on_advertisement(_adv(D1, clock))

    assert _kinds(events) == [EventKind.DEVICE_DISCOVERED, EventKind.DEVICE_NAME_CHANGED]
    assert events[1].device is not None
    assert events[1].device.name == "Sensor-B"


@pytest.mark.asyncio
async def test_identical_snapshot_only_discovered() -> None:
    watcher, _source, resolver, clock, events = _make()
    resolver.set_name(D1, "Sensor-A")
    await watcher.start()
    adv = _adv(D1, clock)
    await watcher.on_advertisement(adv)
    events.clear()

    await watcher.on_advertisement(adv)

    assert _kinds(events) == [EventKind.DEVICE_DISCOVERED]


# ------------------------------------------------------------------
# Resolution failures
# ------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "failure",
    [None, BleWatchResolutionError("gone", address=D1), RuntimeError("platform exploded")],
)
async def test_resolution_failure_drops_event(failure: BaseException | None) -> None:
    watcher, _source, resolver, clock, events = _make()
    resolver.results[D1] = failure
    resolver.set_name(D2, "Sensor-B")
    await watcher.start()
    events.clear()

    await watcher.on_advertisement(_adv(D1, clock))
    assert events == []
    assert watcher.discovered_devices == ()

    await watcher.on_advertisement(_adv(D2, clock))
    assert _kinds(events) == [EventKind.DEVICE_DISCOVERED, EventKind.NEW_DEVICE_DISCOVERED]


@pytest.mark.asyncio
async def test_resolution_timeout_drops_event() -> None:
    watcher, _source, resolver, clock, events = _make(config=WatcherConfig(sweep_interval=0, resolve_timeout=0.01))
    resolver.set_name(D1, "Sensor-A")
    resolver.gates[D1] = asyncio.Event()
    await watcher.start()
    events.clear()

    await watcher.on_advertisement(_adv(D1, clock))

    assert events == []
    assert watcher.discovered_devices == ()


# ------------------------------------------------------------------
# Concurrency
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_late_resolution_after_stop_is_discarded() -> None:
    watcher, _source, resolver, clock, events = _make()
    resolver.set_name(D1, "Sensor-A")
    gate = asyncio.Event()
    resolver.gates[D1] = gate
    await watcher.start()

    watcher.submit(_adv(D1, clock))
    await _settle()
    assert resolver.calls == [D1]
    assert watcher.pending == 1

    await watcher.stop()
    gate.set()
    await watcher.wait_idle()

    assert watcher.discovered_devices == ()
    assert _kinds(events) == [EventKind.STARTED_LISTENING, EventKind.STOPPED_LISTENING]


@pytest.mark.asyncio
async def test_slow_lookup_does_not_block_others() -> None:
    watcher, _source, resolver, clock, events = _make()
    resolver.set_name(D1, "Slow")
    resolver.set_name(D2, "Fast")
    gate = asyncio.Event()
    resolver.gates[D1] = gate
    await watcher.start()

    watcher.submit(_adv(D1, clock))
    watcher.submit(_adv(D2, clock))
    await _settle()

    assert [device.name for device in watcher.discovered_devices] == ["Fast"]

    gate.set()
    await watcher.wait_idle()
    assert [device.name for device in watcher.discovered_devices] == ["Slow", "Fast"]


@pytest.mark.asyncio
async def test_last_completed_resolution_wins() -> None:
    watcher, _source, resolver, clock, _events = _make()
    await watcher.start()

    older = _adv(D1, clock, rssi=-80)
    clock.advance(1)
    newer = _adv(D1, clock, rssi=-30)

    resolver.set_name(D1, "Sensor-A")
    gate = asyncio.Event()
    resolver.gates[D1] = gate
    first = asyncio.create_task(watcher.on_advertisement(older))
    await _settle()
    assert resolver.calls == [D1]
    resolver.gates.pop(D1)
    await watcher.on_advertisement(newer)
    gate.set()
    await first

    (device,) = watcher.discovered_devices
    assert device.rssi == -80


@pytest.mark.asyncio
async def test_submit_from_other_threads() -> None:
    watcher, _source, resolver, clock, events = _make()
    addresses = list(range(1, 41))
    for address in addresses:
        resolver.set_name(address, f"Device-{address}")
    await watcher.start()

    threads = [
        threading.Thread(target=watcher.submit, args=(_adv(address, clock),))
        for address in addresses
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    await watcher.wait_idle()

    assert len(watcher.discovered_devices) == len(addresses)
    assert _kinds(events).count(EventKind.NEW_DEVICE_DISCOVERED) == len(addresses)


@pytest.mark.asyncio
async def test_submit_while_stopped_is_ignored() -> None:
    watcher, _source, resolver, clock, events = _make()
    resolver.set_name(D1, "Sensor-A")

    watcher.submit(_adv(D1, clock))
    await watcher.wait_idle()

    assert resolver.calls == []
    assert events == []


# ------------------------------------------------------------------
# Heartbeat timeout
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_stale_device_evicted_on_read() -> None:
    watcher, _source, resolver, clock, events = _make()
    resolver.set_name(D1, "Sensor-A")
    await watcher.start()
    await watcher.on_advertisement(_adv(D1, clock))
    events.clear()

    clock.advance(30)
    assert len(watcher.discovered_devices) == 1

    clock.advance(1)
    assert watcher.discovered_devices == ()
    assert _kinds(events) == [EventKind.DEVICE_TIMEOUT]
    assert events[0].device is not None
    assert events[0].device.address == D1


@pytest.mark.asyncio
async def test_stale_device_evicted_before_advertisement_processing() -> None:
    watcher, _source, resolver, clock, events = _make()
    resolver.set_name(D1, "Sensor-A")
    resolver.set_name(D2, "Sensor-B")
    await watcher.start()
    await watcher.on_advertisement(_adv(D1, clock))
    events.clear()

    clock.advance(45)
    await watcher.on_advertisement(_adv(D2, clock))

    assert _kinds(events) == [
        EventKind.DEVICE_TIMEOUT,
        EventKind.DEVICE_DISCOVERED,
        EventKind.NEW_DEVICE_DISCOVERED,
    ]


@pytest.mark.asyncio
async def test_heartbeat_change_applies_on_next_sweep() -> None:
    watcher, _source, resolver, clock, events = _make()
    resolver.set_name(D1, "Sensor-A")
    await watcher.start()
    await watcher.on_advertisement(_adv(D1, clock))
    events.clear()

    clock.advance(10)
    watcher.heartbeat_timeout = 5
    assert events == []

    assert watcher.discovered_devices == ()
    assert _kinds(events) == [EventKind.DEVICE_TIMEOUT]


def test_heartbeat_must_be_positive() -> None:
    watcher, _source, _resolver, _clock, _events = _make()
    with pytest.raises(ValueError):
        watcher.heartbeat_timeout = 0


@pytest.mark.asyncio
async def test_periodic_sweep_announces_timeouts_without_reads() -> None:
    watcher, _source, resolver, clock, events = _make(config=WatcherConfig(sweep_interval=0.01))
    resolver.set_name(D1, "Sensor-A")
    await watcher.start()
    await watcher.on_advertisement(_adv(D1, clock))

    clock.advance(60)
    for _ in range(50):
        if EventKind.DEVICE_TIMEOUT in _kinds(events):
            break
        await asyncio.sleep(0.01)

    assert EventKind.DEVICE_TIMEOUT in _kinds(events)
    await watcher.stop()


@pytest.mark.asyncio
async def test_snapshot_is_idempotent() -> None:
    watcher, _source, resolver, clock, _events = _make()
    resolver.set_name(D1, "Sensor-A")
    resolver.set_name(D2, None)
    await watcher.start()
    await watcher.on_advertisement(_adv(D1, clock))
    await watcher.on_advertisement(_adv(D2, clock))

    clock.advance(5)
    assert watcher.discovered_devices == watcher.discovered_devices


@pytest.mark.asyncio
async def test_subscriber_failure_does_not_break_processing() -> None:
    watcher, _source, resolver, clock, events = _make()
    resolver.set_name(D1, "Sensor-A")

    def explode(_event: WatcherEvent) -> None:
        raise RuntimeError("subscriber bug")

    watcher.subscribe(explode, kinds=[EventKind.DEVICE_DISCOVERED])
    await watcher.start()
    await watcher.on_advertisement(_adv(D1, clock))

    assert EventKind.NEW_DEVICE_DISCOVERED in _kinds(events)
    assert watcher.get_device("00:00:00:00:00:D1") is not None
