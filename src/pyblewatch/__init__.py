"""pyblewatch - Live roster of nearby Bluetooth LE devices."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pyblewatch")
except PackageNotFoundError:
    __version__ = "0+local"
from pyblewatch.config import WatcherConfig
from pyblewatch.events import EventKind, WatcherEvent
from pyblewatch.exceptions import (
    BleWatchConfigError,
    BleWatchError,
    BleWatchResolutionError,
    BleWatchSourceError,
)
from pyblewatch.gatt import GattServiceIds
from pyblewatch.models import Advertisement, Device, DeviceInfo, format_address, parse_address
from pyblewatch.notifier import Notifier
from pyblewatch.roster import ChangeKind, Roster
from pyblewatch.sources import AdvertisementSource, DeviceResolver
from pyblewatch.sweeper import TimeoutSweeper
from pyblewatch.watcher import AdvertisementWatcher, WatcherState

__all__ = [
    "__version__",
    "Advertisement",
    "AdvertisementSource",
    "AdvertisementWatcher",
    "BleWatchConfigError",
    "BleWatchError",
    "BleWatchResolutionError",
    "BleWatchSourceError",
    "ChangeKind",
    "Device",
    "DeviceInfo",
    "DeviceResolver",
    "EventKind",
    "GattServiceIds",
    "Notifier",
    "Roster",
    "TimeoutSweeper",
    "WatcherConfig",
    "WatcherEvent",
    "WatcherState",
    "format_address",
    "parse_address",
]
