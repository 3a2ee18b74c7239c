"""Heartbeat-based eviction of silent devices."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from pyblewatch.config import DEFAULT_HEARTBEAT_TIMEOUT
from pyblewatch.events import EventKind, WatcherEvent
from pyblewatch.models.device import Device
from pyblewatch.notifier import Notifier
from pyblewatch.roster.store import Roster

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class TimeoutSweeper:
    """Evict roster entries that have not been refreshed within the heartbeat.

    ``sweep()`` is cheap.  The sweeper installs it as the roster's
    ``before_read`` hook, so every roster read evicts first; the watcher
    also calls it before every advertisement.  ``start()`` additionally
    runs it on a timer so ``DEVICE_TIMEOUT`` notifications go out even
    when nobody is polling.
    """

    def __init__(
        self,
        roster: Roster,
        notifier: Notifier,
        *,
        heartbeat_timeout: float = DEFAULT_HEARTBEAT_TIMEOUT,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._roster = roster
        self._notifier = notifier
        self._clock = clock
        self._heartbeat_timeout = 0.0
        self.heartbeat_timeout = heartbeat_timeout
        self._task: asyncio.Task[None] | None = None
        roster.before_read = self.sweep

    @property
    def heartbeat_timeout(self) -> float:
        """Seconds of silence after which a device is evicted."""
        return self._heartbeat_timeout

    @heartbeat_timeout.setter
    def heartbeat_timeout(self, value: float) -> None:
        if value <= 0:
            raise ValueError(f"heartbeat_timeout must be positive, got {value!r}")
        self._heartbeat_timeout = float(value)

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def sweep(self, now: datetime | None = None) -> list[Device]:
        """Evict and announce every device older than the heartbeat."""
        if now is None:
            now = self._clock()
        threshold = now - timedelta(seconds=self._heartbeat_timeout)
        evicted = self._roster.evict_older_than(threshold)
        for device in evicted:
            _logger.debug("Device timed out id=%s last_seen=%s", device.device_id, device.last_seen)
            self._notifier.emit(WatcherEvent(kind=EventKind.DEVICE_TIMEOUT, device=device))
        return evicted

    def start(self, interval: float) -> None:
        """Run :meth:`sweep` every *interval* seconds on the running loop."""
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval!r}")
        if self.is_running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(interval))

    async def stop(self) -> None:
        task = self._task
        self._task = None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _run(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                self.sweep()
            except Exception:
                _logger.exception("Periodic timeout sweep failed")
