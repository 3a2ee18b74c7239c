"""Thread-safe in-memory roster of visible devices.

This is the only component allowed to mutate the device map.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from datetime import datetime

from pyblewatch.models.device import Device
from pyblewatch.roster.policy import ChangeKind, classify_change

ReadHook = Callable[[], object]


class Roster:
    """Mapping of device id to the latest :class:`Device` snapshot.

    Every operation runs under one lock, so readers never see a half
    applied update and two entries can never share an id.  Nothing
    returned from here aliases the internal map; snapshots are frozen
    models in a fresh tuple.

    Reads (``snapshot``, ``get``, ``size``, ``is_empty``) first call
    ``before_read`` when one is installed.  :class:`TimeoutSweeper`
    installs its ``sweep`` there, so stale entries are evicted before
    they can be observed.
    """

    def __init__(self, *, before_read: ReadHook | None = None) -> None:
        self._devices: dict[str, Device] = {}
        self._lock = threading.Lock()
        self.before_read = before_read

    def upsert(self, device: Device) -> ChangeKind:
        """Insert or replace the entry for ``device.device_id``."""
        with self._lock:
            previous = self._devices.get(device.device_id)
            self._devices[device.device_id] = device
            return classify_change(previous, device)

    def evict_older_than(self, threshold: datetime) -> list[Device]:
        """Remove and return every device last seen before *threshold*."""
        with self._lock:
            stale = [device for device in self._devices.values() if device.last_seen < threshold]
            for device in stale:
                del self._devices[device.device_id]
            return stale

    def get(self, device_id: str) -> Device | None:
        self._expire()
        with self._lock:
            return self._devices.get(device_id)

    def snapshot(self) -> tuple[Device, ...]:
        """Point-in-time copy of all live entries, ordered by device id."""
        self._expire()
        with self._lock:
            return tuple(sorted(self._devices.values(), key=lambda device: device.device_id))

    def clear(self) -> int:
        """Drop every entry and return how many there were."""
        with self._lock:
            removed = len(self._devices)
            self._devices.clear()
            return removed

    def is_empty(self) -> bool:
        self._expire()
        with self._lock:
            return not self._devices

    def size(self) -> int:
        self._expire()
        with self._lock:
            return len(self._devices)

    def __len__(self) -> int:
        return self.size()

    def _expire(self) -> None:
        # Called outside the lock: the hook evicts and notifies subscribers,
        # who may read the roster again.
        hook = self.before_read
        if hook is not None:
            hook()
