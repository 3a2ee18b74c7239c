"""Custom exception hierarchy for pyblewatch."""

from __future__ import annotations


class BleWatchError(Exception):
    """Base exception for all pyblewatch errors."""


class BleWatchConfigError(BleWatchError):
    """Invalid or missing configuration."""


class BleWatchSourceError(BleWatchError):
    """The advertisement source could not be started or stopped."""


class BleWatchResolutionError(BleWatchError):
    """A device lookup failed.

    Raised by resolvers when an address cannot be turned into device
    metadata.  The watcher catches this per advertisement and drops the
    event; it never reaches the advertisement source.
    """

    def __init__(self, message: str, *, address: int | None = None) -> None:
        self.address = address
        super().__init__(message)
