"""GATT service assigned numbers.

The watcher requires a :class:`GattServiceIds` table at construction time
so that callers agree up front on which services they care about.  The
table only names services; it never talks to a device.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

# ------------------------------------------------------------------
# Bluetooth SIG assigned numbers  (16-bit service UUID → name)
# ------------------------------------------------------------------

_BASE_UUID_SUFFIX = "-0000-1000-8000-00805f9b34fb"

_DEFAULT_SERVICES: dict[int, str] = {
    0x1800: "Generic Access",
    0x1801: "Generic Attribute",
    0x1802: "Immediate Alert",
    0x1803: "Link Loss",
    0x1804: "Tx Power",
    0x1805: "Current Time",
    0x180A: "Device Information",
    0x180D: "Heart Rate",
    0x180F: "Battery",
    0x1810: "Blood Pressure",
    0x1812: "Human Interface Device",
    0x1816: "Cycling Speed and Cadence",
    0x1818: "Cycling Power",
    0x1819: "Location and Navigation",
    0x181A: "Environmental Sensing",
    0x181C: "User Data",
    0x181D: "Weight Scale",
    0x1826: "Fitness Machine",
}


def short_uuid(value: int | str) -> int:
    """Reduce a service UUID to its 16-bit assigned number.

    Accepts an int, a 4-digit hex string (``"180f"`` or ``"0x180F"``) or
    a full 128-bit UUID built on the Bluetooth base UUID.  Raises
    :class:`ValueError` for anything else.
    """
    if isinstance(value, int):
        if not 0 <= value <= 0xFFFF:
            raise ValueError(f"not a 16-bit service UUID: {value!r}")
        return value
    text = value.strip().lower()
    if text.startswith("0x"):
        text = text[2:]
    if len(text) == 36:
        if not text.endswith(_BASE_UUID_SUFFIX) or not text.startswith("0000"):
            raise ValueError(f"not a Bluetooth base UUID: {value!r}")
        text = text[4:8]
    if len(text) != 4:
        raise ValueError(f"not a 16-bit service UUID: {value!r}")
    try:
        return int(text, 16)
    except ValueError as exc:
        raise ValueError(f"not a 16-bit service UUID: {value!r}") from exc


@dataclass(frozen=True)
class GattServiceIds(Mapping[int, str]):
    """Immutable lookup of 16-bit GATT service numbers to names."""

    services: Mapping[int, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        normalized = {short_uuid(key): name for key, name in self.services.items()}
        object.__setattr__(self, "services", MappingProxyType(normalized))

    @classmethod
    def default(cls) -> GattServiceIds:
        return cls(_DEFAULT_SERVICES)

    def name_for(self, uuid: int | str) -> str | None:
        try:
            return self.services.get(short_uuid(uuid))
        except ValueError:
            return None

    def __getitem__(self, key: int) -> str:
        return self.services[key]

    def __iter__(self) -> Iterator[int]:
        return iter(self.services)

    def __len__(self) -> int:
        return len(self.services)

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, (int, str)):
            return False
        return self.name_for(key) is not None
