"""Classified watcher notifications.

Every notification the watcher delivers to subscribers is a
:class:`WatcherEvent`.  Listening transitions carry no device; every
other kind carries the snapshot it is about.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import Field, model_validator

from pyblewatch.models._base import BleWatchBaseModel, UtcDatetime
from pyblewatch.models.device import Device


class EventKind(StrEnum):
    STARTED_LISTENING = "started_listening"
    STOPPED_LISTENING = "stopped_listening"
    DEVICE_DISCOVERED = "device_discovered"
    NEW_DEVICE_DISCOVERED = "new_device_discovered"
    DEVICE_NAME_CHANGED = "device_name_changed"
    DEVICE_TIMEOUT = "device_timeout"


_LISTENING_KINDS = frozenset({EventKind.STARTED_LISTENING, EventKind.STOPPED_LISTENING})


class WatcherEvent(BleWatchBaseModel):
    """A notification delivered by the :class:`~pyblewatch.notifier.Notifier`."""

    kind: EventKind
    device: Device | None = None
    emitted_at: UtcDatetime = Field(default_factory=lambda: datetime.now(UTC))

    @model_validator(mode="after")
    def _check_device(self) -> WatcherEvent:
        if self.kind in _LISTENING_KINDS:
            if self.device is not None:
                raise ValueError(f"{self.kind} events carry no device")
        elif self.device is None:
            raise ValueError(f"{self.kind} events require a device")
        return self
