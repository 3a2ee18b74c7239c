"""Protocols for the platform side of the watcher."""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol, runtime_checkable

from pyblewatch.models.advertisement import Advertisement
from pyblewatch.models.device import DeviceInfo

AdvertisementCallback = Callable[[Advertisement], None]
"""Receives each advertisement.  May be invoked from any thread."""


@runtime_checkable
class AdvertisementSource(Protocol):
    """A radio scan that can be started and stopped."""

    async def start(self, callback: AdvertisementCallback) -> None:
        """Begin scanning and deliver every reception to *callback*."""
        ...

    async def stop(self) -> None:
        """Stop scanning and stop calling the registered callback."""
        ...


@runtime_checkable
class DeviceResolver(Protocol):
    """Turns a bare address into device metadata."""

    async def resolve_device(self, address: int) -> DeviceInfo | None:
        """Return metadata for *address*, or ``None`` if the device is gone.

        Implementations may also raise; the watcher treats any exception
        like ``None``.
        """
        ...
