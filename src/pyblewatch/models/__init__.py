"""Data models for pyblewatch."""

from pyblewatch.models._base import (
    BleAddress,
    BleWatchBaseModel,
    UtcDatetime,
    format_address,
    parse_address,
)
from pyblewatch.models.advertisement import Advertisement
from pyblewatch.models.device import Device, DeviceInfo

__all__ = [
    "Advertisement",
    "BleAddress",
    "BleWatchBaseModel",
    "Device",
    "DeviceInfo",
    "UtcDatetime",
    "format_address",
    "parse_address",
]
